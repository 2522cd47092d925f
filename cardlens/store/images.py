"""Local image storage keyed by relative refs."""

from pathlib import Path
from typing import Protocol, Union

from ..utils.log import get_logger
from ..utils.validation import validate_image_ref


class ImageStore(Protocol):
    def delete(self, ref: str) -> bool:
        ...


class LocalImageStore:
    """Images live under a root directory; refs are paths relative to it."""

    def __init__(self, root: Union[str, Path]):
        self.logger = get_logger(__name__)
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, ref: str) -> Path:
        return self.root / validate_image_ref(ref)

    def delete(self, ref: str) -> bool:
        """Remove an image; False when it was already gone."""
        path = self.path_for(ref)
        try:
            path.unlink()
        except FileNotFoundError:
            self.logger.debug("Image already absent", ref=ref)
            return False
        self.logger.info("Image deleted", ref=ref)
        return True
