class ValidationError(ValueError):
    """Malformed or missing input; nothing was written."""


class InvalidCategoriesPayload(ValidationError):
    pass


class NotFoundError(ValueError):
    """The entity does not exist for the acting user."""


class BusinessRuleError(ValueError):
    pass


class DuplicateAccountError(ValueError):
    pass


class PersistenceError(RuntimeError):
    pass
