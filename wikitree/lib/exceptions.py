"""Error taxonomy shared by every wikitree service."""


class WikiError(Exception):
    """Base class for all wikitree errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(WikiError):
    """A page, revision or share link addressed by id does not exist."""


class PageNotFoundError(NotFoundError):
    def __init__(self, page_id: object = None) -> None:
        super().__init__(f"Page not found: {page_id}" if page_id is not None else "Page not found")
        self.page_id = page_id


class RevisionNotFoundError(NotFoundError):
    def __init__(self, revision_id: object = None) -> None:
        super().__init__(f"Revision not found: {revision_id}" if revision_id is not None else "Revision not found")
        self.revision_id = revision_id


class ShareLinkNotFoundError(NotFoundError):
    def __init__(self, message: str = "Share link not found") -> None:
        super().__init__(message)


class ConflictError(WikiError):
    """The requested change collides with existing state."""


class SlugConflictError(ConflictError):
    def __init__(self, slug: str) -> None:
        super().__init__(f"A page with slug '{slug}' already exists")
        self.slug = slug


class RevisionConflictError(ConflictError):
    """Another edit of the same page took the revision number first."""

    def __init__(self, page_id: object, revision_number: int) -> None:
        super().__init__(f"Revision {revision_number} of page {page_id} was written concurrently")
        self.page_id = page_id
        self.revision_number = revision_number


class InvalidInputError(WikiError):
    """Input was rejected; ``field`` names the offending value."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidSlugError(InvalidInputError):
    def __init__(self, message: str = "Slug is empty after normalization") -> None:
        super().__init__(message, field="slug")


class InvalidTitleError(InvalidInputError):
    def __init__(self, message: str = "Title must not be empty") -> None:
        super().__init__(message, field="title")


class PermissionDeniedError(WikiError):
    """The acting user may not perform the operation."""


class ContentUnavailableError(WikiError):
    """The markdown renderer failed for a page's content."""


class StorageError(WikiError):
    """The database rejected or failed an operation.

    Never retried inside wikitree: retrying could apply a cascade twice.
    """
