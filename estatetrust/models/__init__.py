from estatetrust.models.base import Base  # noqa: F401

from estatetrust.models.user import User  # noqa: F401
from estatetrust.models.api_key import ApiKey  # noqa: F401
from estatetrust.models.listing import Listing  # noqa: F401
from estatetrust.models.verification_policy import VerificationPolicySetting  # noqa: F401
from estatetrust.models.notification import Notification  # noqa: F401
from estatetrust.models.audit_log import AuditLog  # noqa: F401
