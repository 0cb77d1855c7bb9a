# stream_haven/storage.py
# Directory-backed key/value storage: the local equivalent of browser localStorage.
# One file per key; writes go to a temp file first and are renamed into place.

import os
import tempfile


class LocalStorage:
    """
    Minimal localStorage-like API.
      - get_item/set_item/remove_item work with text (UTF-8).
      - get_bytes/set_bytes are used for the database snapshot.
    Missing keys read as None.
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key: str) -> str:
        # Keys are fixed identifiers; reject anything that could escape the root.
        if not key or os.sep in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return os.path.join(self.root, key)

    def get_bytes(self, key: str):
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "rb") as fh:
            return fh.read()

    def set_bytes(self, key: str, data: bytes) -> None:
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=f".{key}.")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def get_item(self, key: str):
        data = self.get_bytes(key)
        return None if data is None else data.decode("utf-8")

    def set_item(self, key: str, value: str) -> None:
        self.set_bytes(key, value.encode("utf-8"))

    def remove_item(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    def __repr__(self):
        return f"<LocalStorage {self.root}>"
