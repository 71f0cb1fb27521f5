import os


class MediaStorage:
    """Maps files under the static media root to public URLs."""

    def __init__(self, root: str = "static", base_url: str = "http://localhost:8000", mount: str = "/static"):
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")
        self.mount = "/" + mount.strip("/")

    @property
    def videos_dir(self) -> str:
        path = os.path.join(self.root, "videos")
        os.makedirs(path, exist_ok=True)
        return path

    def url_for(self, path: str | None) -> str | None:
        if not path:
            return None
        rel = os.path.relpath(os.path.abspath(path), self.root).replace(os.sep, "/")
        if rel.startswith(".."):
            raise ValueError(f"{path} is outside the media root {self.root}")
        return f"{self.base_url}{self.mount}/{rel}"
