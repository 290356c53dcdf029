"""Call boundary to the host scripting runtime."""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Protocol

from ae_bridge.bridge import scripts
from ae_bridge.bridge.automation import AutomationClient

logger = logging.getLogger(__name__)


class HostSession(Protocol):
    """Primitive host operations used by the consumer loop.

    Item handles are host item ids. Implementations raise on failure; the
    consumer converts any exception into "keep the file for a later tick".
    """

    def has_project(self) -> bool: ...

    def has_selection(self) -> bool: ...

    def find_folder(self, name: str) -> int | None: ...

    def add_folder(self, name: str) -> int: ...

    def find_footage(self, path: str) -> int | None: ...

    def import_footage(self, path: str) -> int: ...

    def set_parent_folder(self, item_id: int, folder_id: int) -> None: ...

    def active_comp(self) -> int | None: ...

    def add_layer(self, comp_id: int, item_id: int) -> None: ...

    def evaluate(self, code: str) -> None: ...

    def evaluate_file(self, path: str) -> None: ...

    def undo_group(self, name: str) -> AbstractContextManager[None]: ...


class AutomationHostSession:
    """HostSession that runs each primitive as a short script through automation.

    Lets ``ae-bridge consume`` drain the queue from outside the host when the
    startup script is not installed.
    """

    def __init__(self, client: AutomationClient, *, scratch_dir: Path | None = None) -> None:
        self.client = client
        self.scratch_dir = scratch_dir

    def has_project(self) -> bool:
        return self._run(scripts.SNIPPET_HAS_PROJECT) == "true"

    def has_selection(self) -> bool:
        return self._run(scripts.SNIPPET_HAS_SELECTION) == "true"

    def find_folder(self, name: str) -> int | None:
        return _optional_id(self._run(scripts.snippet_find_folder(name)))

    def add_folder(self, name: str) -> int:
        return _required_id(self._run(scripts.snippet_add_folder(name)), f"add folder {name!r}")

    def find_footage(self, path: str) -> int | None:
        return _optional_id(self._run(scripts.snippet_find_footage(path)))

    def import_footage(self, path: str) -> int:
        return _required_id(self._run(scripts.snippet_import_footage(path)), f"import {path}")

    def set_parent_folder(self, item_id: int, folder_id: int) -> None:
        self._run(scripts.snippet_set_parent_folder(item_id, folder_id))

    def active_comp(self) -> int | None:
        return _optional_id(self._run(scripts.SNIPPET_ACTIVE_COMP))

    def add_layer(self, comp_id: int, item_id: int) -> None:
        self._run(scripts.snippet_add_layer(comp_id, item_id))

    def evaluate(self, code: str) -> None:
        self._run(code)

    def evaluate_file(self, path: str) -> None:
        self.client.do_script_file(Path(path))

    @contextmanager
    def undo_group(self, name: str) -> Iterator[None]:
        self._run(scripts.snippet_begin_undo(name))
        try:
            yield
        finally:
            self._run(scripts.SNIPPET_END_UNDO)

    def _run(self, source: str) -> str:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            suffix=".jsx",
            prefix="ae-bridge-",
            dir=self.scratch_dir,
            delete=False,
        ) as handle:
            handle.write(source)
            script_path = Path(handle.name)
        try:
            return self.client.do_script_file(script_path)
        finally:
            script_path.unlink(missing_ok=True)


def _optional_id(raw: str) -> int | None:
    text = raw.strip()
    if not text:
        return None
    return int(text)


def _required_id(raw: str, what: str) -> int:
    item_id = _optional_id(raw)
    if item_id is None:
        raise RuntimeError(f"Host returned no item for: {what}")
    return item_id
