"""Type-keyed loaders for fetched artifacts.

Every artifact directory written by ADD_ARTIFACT contains an ``__init__.py``
that calls :func:`load` with the artifact's declared type, so importing the
directory gives back the deserialized value.
"""

import json
import pickle
from typing import Any, BinaryIO, Callable, Dict

Loader = Callable[[BinaryIO], Any]

_loaders: Dict[str, Loader] = {}


def register_loader(data_type: str, loader: Loader) -> None:
    """Register (or replace) the loader used for data_type."""
    _loaders[data_type] = loader


def get_loader(data_type: str) -> Loader:
    """Return the loader for data_type, falling back to pickle."""
    return _loaders.get(data_type, pickle.load)


def load(data_type: str, fileobj: BinaryIO) -> Any:
    """Deserialize fileobj according to data_type and close it."""
    with fileobj:
        return get_loader(data_type)(fileobj)


def _load_text(fileobj: BinaryIO) -> str:
    return fileobj.read().decode("utf-8")


register_loader("bytes", lambda fileobj: fileobj.read())
register_loader("str", _load_text)
register_loader("text", _load_text)
register_loader("json", json.load)
