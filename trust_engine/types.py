from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Union


class TrustLevel(str, Enum):
    UNVERIFIED = "unverified"
    BASIC = "basic"
    VERIFIED = "verified"
    TRUSTED = "trusted"
    PREMIUM = "premium"
    EXPERT = "expert"
    SUSPENDED = "suspended"
    BANNED = "banned"


class AccountState(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"


class BadgeType(str, Enum):
    EMAIL_VERIFIED = "email_verified"
    PHONE_VERIFIED = "phone_verified"
    IDENTITY_VERIFIED = "identity_verified"
    ADDRESS_VERIFIED = "address_verified"
    BUSINESS_VERIFIED = "business_verified"
    PAYMENT_VERIFIED = "payment_verified"
    SOCIAL_VERIFIED = "social_verified"
    EXPERT_SELLER = "expert_seller"
    TOP_RATED = "top_rated"
    POWER_USER = "power_user"
    FEATURED_SELLER = "featured_seller"
    COMMUNITY_MODERATOR = "community_moderator"


class BadgeStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    VERIFIED = "verified"
    REJECTED = "rejected"
    EXPIRED = "expired"
    REVOKED = "revoked"


class MetricType(str, Enum):
    TRANSACTION_COUNT = "transaction_count"
    SUCCESSFUL_TRANSACTIONS = "successful_transactions"
    DISPUTE_RATE = "dispute_rate"
    RESPONSE_TIME = "response_time"
    COMPLETION_RATE = "completion_rate"
    CUSTOMER_SATISFACTION = "customer_satisfaction"
    ACCOUNT_AGE = "account_age"
    PROFILE_COMPLETENESS = "profile_completeness"
    SOCIAL_CONNECTIONS = "social_connections"
    REVIEW_QUALITY = "review_quality"


class ProfileStrength(str, Enum):
    WEAK = "weak"
    FAIR = "fair"
    GOOD = "good"
    STRONG = "strong"
    EXCELLENT = "excellent"


class RiskFlag(str, Enum):
    MULTIPLE_ACCOUNTS = "multiple_accounts"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    HIGH_DISPUTE_RATE = "high_dispute_rate"
    POLICY_VIOLATIONS = "policy_violations"
    FAKE_REVIEWS = "fake_reviews"
    PAYMENT_ISSUES = "payment_issues"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertType(str, Enum):
    REPUTATION_DROP = "reputation_drop"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    VERIFICATION_EXPIRING = "verification_expiring"
    RISK_THRESHOLD_EXCEEDED = "risk_threshold_exceeded"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuthenticityStatus(str, Enum):
    AUTHENTIC = "authentic"
    SUSPICIOUS = "suspicious"
    FAKE = "fake"


class ContentType(str, Enum):
    PRODUCT_LISTING = "product_listing"
    PRODUCT_DESCRIPTION = "product_description"
    USER_REVIEW = "user_review"
    COMMENT = "comment"
    MESSAGE = "message"
    USER_PROFILE = "user_profile"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"


class ModerationStatus(str, Enum):
    PENDING = "pending"
    AUTO_APPROVED = "auto_approved"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"


class ViolationType(str, Enum):
    PROFANITY = "profanity"
    SPAM = "spam"
    HARASSMENT = "harassment"
    HATE_SPEECH = "hate_speech"
    VIOLENCE = "violence"
    ADULT_CONTENT = "adult_content"
    MISLEADING_INFO = "misleading_info"
    PERSONAL_INFO = "personal_info"
    COPYRIGHT = "copyright"
    TRADEMARK = "trademark"
    ILLEGAL_CONTENT = "illegal_content"


class ViolationCategory(str, Enum):
    SAFETY = "safety"
    LEGAL = "legal"
    COMMUNITY = "community"
    COMMERCIAL = "commercial"
    TECHNICAL = "technical"


class ViolationSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DetectionMethod(str, Enum):
    AUTO_AI = "auto_ai"
    AUTO_KEYWORD = "auto_keyword"
    AUTO_IMAGE = "auto_image"
    MANUAL_REPORT = "manual_report"
    MANUAL_REVIEW = "manual_review"
    SYSTEM_SCAN = "system_scan"


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    EDIT = "edit"
    WARNING = "warning"
    SUSPEND_USER = "suspend_user"
    BAN_USER = "ban_user"
    REMOVE_CONTENT = "remove_content"
    BLUR_CONTENT = "blur_content"
    RESTRICT_VISIBILITY = "restrict_visibility"
    REQUIRE_AGE_VERIFICATION = "require_age_verification"


class ReviewerDecision(str, Enum):
    APPROVE = "approve"
    APPROVE_WITH_EDITS = "approve_with_edits"
    REJECT = "reject"
    ESCALATE = "escalate"


class QueuePriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"


class QueueType(str, Enum):
    AUTO_MODERATION = "auto_moderation"
    USER_FLAGGED = "user_flagged"


class FlagType(str, Enum):
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    SPAM = "spam"
    HARASSMENT = "harassment"
    HATE_SPEECH = "hate_speech"
    VIOLENCE = "violence"
    ADULT_CONTENT = "adult_content"
    FAKE_INFORMATION = "fake_information"
    COPYRIGHT_VIOLATION = "copyright_violation"
    PRIVACY_VIOLATION = "privacy_violation"
    SCAM = "scam"
    COUNTERFEIT = "counterfeit"


class FlagSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DisputeType(str, Enum):
    ORDER_ISSUE = "order_issue"
    PAYMENT_DISPUTE = "payment_dispute"
    PRODUCT_QUALITY = "product_quality"
    DELIVERY_PROBLEM = "delivery_problem"
    SERVICE_COMPLAINT = "service_complaint"
    REFUND_REQUEST = "refund_request"
    USER_CONDUCT = "user_conduct"
    POLICY_VIOLATION = "policy_violation"


class DisputeCategory(str, Enum):
    COMMERCIAL = "commercial"
    TECHNICAL = "technical"
    SERVICE = "service"
    POLICY = "policy"
    SAFETY = "safety"


class DisputeStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    INVESTIGATION = "investigation"
    MEDIATION = "mediation"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"
    APPEALED = "appealed"


class DisputePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ReportType(str, Enum):
    USER_BEHAVIOR = "user_behavior"
    FRAUD = "fraud"
    SAFETY_CONCERN = "safety_concern"
    HARASSMENT = "harassment"
    SPAM = "spam"
    FAKE_PROFILE = "fake_profile"
    INAPPROPRIATE_CONTENT = "inappropriate_content"


class ReportCategory(str, Enum):
    URGENT = "urgent"
    HIGH_PRIORITY = "high_priority"
    MEDIUM_PRIORITY = "medium_priority"
    LOW_PRIORITY = "low_priority"
    INFORMATIONAL = "informational"


class ReportPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EntityKind(str, Enum):
    MODERATION = "moderation"
    DISPUTE = "dispute"
    VERIFICATION = "verification"


# --- subject signals -------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Metric:
    subject_id: str
    metric_type: MetricType
    value: float
    max_value: Optional[float]
    weight: float
    source: str = "system_calculated"


@dataclass(slots=True, frozen=True)
class Badge:
    subject_id: str
    badge_type: BadgeType
    status: BadgeStatus
    expires_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        if self.status is not BadgeStatus.VERIFIED:
            return False
        return self.expires_at is None or self.expires_at > now


@dataclass(slots=True, frozen=True)
class RatingEvent:
    value: float
    created_at: datetime


@dataclass(slots=True, frozen=True)
class OrderOutcome:
    status: str
    delivered_at: Optional[datetime] = None
    expected_delivery_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class ActivityCounts:
    """Counts over the trailing 30 days."""

    logins: int = 0
    orders: int = 0
    messages: int = 0


@dataclass(slots=True, frozen=True)
class SocialCounts:
    verified_endorsements: int = 0
    connections: int = 0
    posts: int = 0


@dataclass(slots=True, frozen=True)
class SubjectSnapshot:
    """Point-in-time view of everything the scorers read for one subject."""

    subject_id: str
    metrics: tuple[Metric, ...] = ()
    badges: tuple[Badge, ...] = ()
    ratings: tuple[RatingEvent, ...] = ()
    orders: tuple[OrderOutcome, ...] = ()
    activity: ActivityCounts = field(default_factory=ActivityCounts)
    social: SocialCounts = field(default_factory=SocialCounts)
    profile_fields: Mapping[str, Any] = field(default_factory=dict)
    account_state: AccountState = AccountState.ACTIVE


@dataclass(slots=True, frozen=True)
class RiskSignals:
    subject_id: str
    duplicate_accounts: int = 0
    total_orders: int = 0
    disputed_orders: int = 0
    policy_violations: int = 0


@dataclass(slots=True, frozen=True)
class ReviewSignals:
    review_id: str
    is_duplicate: bool = False
    reviews_last_24h: int = 0


# --- derived records -------------------------------------------------------


@dataclass(slots=True)
class TrustProfile:
    subject_id: str
    trust_score: int
    trust_level: TrustLevel
    reputation_score: int
    reliability_score: int
    activity_score: int
    social_score: int
    profile_strength: ProfileStrength
    version: int = 0
    updated_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class RiskFactor:
    flag: RiskFlag
    score: float
    weight: float
    description: str
    evidence: tuple[str, ...] = ()


@dataclass(slots=True)
class RiskAssessment:
    subject_id: str
    overall_risk_score: float
    risk_level: RiskLevel
    factors: tuple[RiskFactor, ...]
    recommendations: tuple[str, ...]
    assessed_at: datetime
    version: int = 0


@dataclass(slots=True, frozen=True)
class TrustAlert:
    subject_id: str
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ReviewAuthenticity:
    review_id: str
    score: int
    status: AuthenticityStatus
    flags: tuple[str, ...] = ()


# --- content moderation ----------------------------------------------------


@dataclass(slots=True, frozen=True)
class ContentRecord:
    id: str
    author_id: str
    content_type: ContentType
    content: str = ""
    title: Optional[str] = None
    media_urls: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ContentViolation:
    content_id: str
    rule_id: str
    rule_name: str
    violation_type: ViolationType
    category: ViolationCategory
    severity: ViolationSeverity
    description: str
    detected_by: DetectionMethod
    confidence: float
    score: float


@dataclass(slots=True, frozen=True)
class CategoryScore:
    score: float
    confidence: float
    details: tuple[str, ...] = ()

    @property
    def triggered(self) -> bool:
        return self.score > 0


@dataclass(slots=True, frozen=True)
class Recommendation:
    action: ModerationAction
    reason: str
    confidence: float
    severity: ViolationSeverity


@dataclass(slots=True, frozen=True)
class ModerationResult:
    content_id: str
    overall_score: float
    categories: Mapping[str, CategoryScore]
    recommendations: tuple[Recommendation, ...]
    violations: tuple[ContentViolation, ...]
    requires_human_review: bool


@dataclass(slots=True, frozen=True)
class ContentFlag:
    content_id: str
    reporter_id: str
    flag_type: FlagType
    severity: FlagSeverity
    reason: str


@dataclass(slots=True)
class QueueEntry:
    content_id: str
    priority: QueuePriority
    due_at: datetime
    queue_type: QueueType
    reason: str
    created_at: datetime
    assigned_to: Optional[str] = None


# --- disputes / priorities -------------------------------------------------


@dataclass(slots=True)
class Dispute:
    id: str
    dispute_type: DisputeType
    category: DisputeCategory
    amount: Optional[float] = None
    status: DisputeStatus = DisputeStatus.SUBMITTED
    priority: Optional[DisputePriority] = None
    due_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class PriorityAssignment:
    priority: Union[QueuePriority, DisputePriority]
    due_at: datetime


@dataclass(slots=True)
class EntityStatus:
    kind: EntityKind
    entity_id: str
    status: str
    version: int = 0
    expires_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


AnyStatus = Union[ModerationStatus, DisputeStatus, VerificationStatus]
