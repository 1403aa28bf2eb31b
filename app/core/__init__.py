"""
Shared infrastructure for the marketplace and settlement apps.

- core.models.BaseModel: abstract model with created_at / updated_at
- core.model_mixins: UUID primary keys and JSON metadata
- core.services: BaseService and ServiceResult
- core.exceptions: BaseApplicationError, NotFoundError, ConflictError
- core.views.health_check: liveness probe
"""
