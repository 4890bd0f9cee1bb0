from typing import Optional

from activity_schema import Category, SignalKind

DOCS_CONTENT_TYPES = frozenset({"markdown", "plaintext", "text/markdown", "text/plain"})

_DEBUG_SIGNALS = frozenset(
    {
        SignalKind.DEBUG_STARTED,
        SignalKind.DEBUG_CHANGED,
        SignalKind.DEBUG_TERMINATED,
        SignalKind.BREAKPOINTS_CHANGED,
    }
)
_TASK_SIGNALS = frozenset({SignalKind.TASK_STARTED, SignalKind.TASK_ENDED})
_NOTEBOOK_SIGNALS = frozenset(
    {SignalKind.NOTEBOOK_OPENED, SignalKind.NOTEBOOK_CHANGED, SignalKind.NOTEBOOK_SAVED}
)
_DOCUMENT_SIGNALS = frozenset(
    {
        SignalKind.DOCUMENT_CHANGED,
        SignalKind.SELECTION_CHANGED,
        SignalKind.DOCUMENT_OPENED,
        SignalKind.DOCUMENT_SAVED,
        SignalKind.EDITOR_FOCUS_CHANGED,
    }
)


def classify_document(content_type: Optional[str]) -> Category:
    if (content_type or "").strip().lower() in DOCS_CONTENT_TYPES:
        return Category.WRITING_DOCS
    return Category.CODING


def classify_task(task_name: Optional[str]) -> Optional[Category]:
    """Map a task run to a category; tasks that neither build nor test are not tracked."""
    name = (task_name or "").lower()
    if "build" in name:
        return Category.COMPILING
    if "test" in name:
        return Category.CODE_REVIEWING
    return None


def classify_signal(
    kind: SignalKind,
    content_type: Optional[str] = None,
    task_name: Optional[str] = None,
    *,
    executed: bool = False,
) -> Optional[Category]:
    """
    Return the activity category implied by an editor signal at arrival time.

    Debug signals force Debugging regardless of the document's content type.
    Signals that never open a session (close, visible range) map to None.
    """
    if kind in _DEBUG_SIGNALS:
        return Category.DEBUGGING
    if kind in _TASK_SIGNALS:
        return classify_task(task_name)
    if kind in _NOTEBOOK_SIGNALS:
        if kind is SignalKind.NOTEBOOK_CHANGED and executed:
            return Category.COMPILING
        return Category.CODING
    if kind in _DOCUMENT_SIGNALS:
        return classify_document(content_type)
    return None
