from typing import Optional, Tuple

from PIL import Image

from imgx.models import ProcessedImage


class PreviewState:
    """
    The single current-preview slot.

    Holds the latest accepted ProcessedImage plus a cached display-sized
    copy. Replacing or clearing the slot releases the superseded image.
    """
    def __init__(self):
        self.current: Optional[ProcessedImage] = None
        self.display: Optional[Image.Image] = None
        self._display_size: Optional[Tuple[int, int]] = None

    def update(self, image: ProcessedImage):
        """Install a new preview and release the previous one"""
        previous = self.current
        self.current = image
        self._drop_display()
        if previous is not None and previous is not image:
            previous.release()

    def get_display(self, size: Tuple[int, int]) -> Optional[Image.Image]:
        """Get a copy that fits inside `size`, caching the result"""
        if self.current is None:
            return None

        if self.display is None or self._display_size != tuple(size):
            self._drop_display()
            thumb = self.current.display.copy()
            thumb.thumbnail(size, Image.Resampling.LANCZOS)
            self.display = thumb
            self._display_size = tuple(size)
        return self.display

    def clear(self):
        """Release and forget the current preview"""
        if self.current is not None:
            self.current.release()
        self.current = None
        self._drop_display()

    def _drop_display(self):
        if self.display is not None:
            self.display.close()
        self.display = None
        self._display_size = None
