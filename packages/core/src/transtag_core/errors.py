from __future__ import annotations


class TranstagError(RuntimeError):
    pass


class ConfigurationError(TranstagError):
    """Missing or invalid configuration; raised before any work begins."""


class ScopeResolutionError(TranstagError):
    """A content row's owning scope could not be resolved through its relationship chain."""


class RelationshipMetadataError(ScopeResolutionError):
    """The registry names a table or column the content store does not have."""


class UnknownTableError(TranstagError):
    pass


class IdentifierConflictError(TranstagError):
    def __init__(self, old: str, new: str, languages: list[str]):
        super().__init__(
            f"Cannot rename {old} -> {new}: records already exist for {new} ({', '.join(languages)})"
        )
        self.old = old
        self.new = new
        self.languages = languages
