"""
Unit tests build model instances without an app. Importing every model here
registers all mappers before the first relationship is configured.
"""

import gatehouse.models.feature  # noqa: F401
import gatehouse.models.refresh_token  # noqa: F401
import gatehouse.models.role  # noqa: F401
import gatehouse.models.role_feature  # noqa: F401
import gatehouse.models.user  # noqa: F401
