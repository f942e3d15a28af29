"""Domain enumerations for the listing console.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class FormKind(str, Enum):
    """Which submission form a workflow drives."""

    PROPERTY = "property"
    PROJECT = "project"


class MediaState(str, Enum):
    """Moderation lifecycle of a single media attachment."""

    PENDING = "pending"
    CHECKING = "checking"
    APPROVED = "approved"
    REJECTED = "rejected"
    # Held for human review: does not block the step, does not count as approved
    PENDING_REVIEW = "pending_review"


class MediaKind(str, Enum):
    """Kinds of file a listing can carry."""

    IMAGE = "image"
    VIDEO = "video"
    BROCHURE = "brochure"


class ListingStatus(str, Enum):
    """Whether a property is offered for sale or rent."""

    SALE = "sale"
    RENT = "rent"


class InquiryStatus(str, Enum):
    """Lifecycle status of a buyer inquiry."""

    NEW = "new"
    READ = "read"
    REPLIED = "replied"
    CONTACTED = "contacted"
    INTERESTED = "interested"
    NOT_INTERESTED = "not_interested"
    CLOSED = "closed"


class SenderRole(str, Enum):
    """Role of a chat participant."""

    BUYER = "buyer"
    SELLER = "seller"
    AGENT = "agent"


class InboxTab(str, Enum):
    """Which pane of the selected conversation is showing."""

    DETAILS = "details"
    CHAT = "chat"
