"""Domain modules package."""

from coachcarter.modules.audit import models as audit_models  # noqa: F401
from coachcarter.modules.booking import models as booking_models  # noqa: F401
from coachcarter.modules.notifications import models as notifications_models  # noqa: F401
