"""Exception hierarchy shared by the render pipeline, index and CLI."""

from __future__ import annotations


class AlexandriaError(Exception):
    """Base class for all errors raised by Alexandria."""


class NoSuchScrollError(AlexandriaError):
    """A scroll id no longer has a source file in the library.

    This is an expected condition: the scroll was deleted but its index entry
    has not been removed yet.
    """

    def __init__(self, scroll_id: str) -> None:
        super().__init__(f"No such scroll: {scroll_id}")
        self.scroll_id = scroll_id


class TemplateError(AlexandriaError):
    """A LaTeX template could not be read."""

    def __init__(self, name: str, scroll_id: str) -> None:
        super().__init__(f"read template {name} while producing latex file for scroll {scroll_id}")
        self.name = name
        self.scroll_id = scroll_id


class ExternalProcessError(AlexandriaError):
    """An external program (compiler, converter) failed."""

    def __init__(self, description: str, returncode: int | None, output: str = "") -> None:
        status = "could not be started" if returncode is None else f"exited with {returncode}"
        message = f"{description} {status}"
        if output:
            message = f"{message}:\n{output}"
        super().__init__(message)
        self.description = description
        self.returncode = returncode
        self.output = output


class LibraryError(AlexandriaError):
    """The library directory could not be read."""


class IndexUnavailableError(AlexandriaError):
    """The search index does not exist or could not be opened or created."""


class QuerySyntaxError(AlexandriaError):
    """A query string could not be parsed."""


class FatalRenderError(AlexandriaError):
    """A render failure that aborts a whole batch."""

    def __init__(self, scroll_id: str, cause: BaseException | None) -> None:
        super().__init__(f"An error occurred when processing scroll {scroll_id}: {cause}")
        self.scroll_id = scroll_id
        self.cause = cause
