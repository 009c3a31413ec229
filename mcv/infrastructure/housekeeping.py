import logging
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class HousekeepingService:
    """Removes files left behind by conversions that did not complete."""

    def remove_partial_output(self, path: Optional[Union[str, Path]]) -> bool:
        """Deletes the output file if present. Returns True if something was removed."""
        if not path:
            return False
        target = Path(path)
        if not target.exists():
            return False
        try:
            target.unlink()
        except OSError as exc:
            logger.warning(f"CLEANUP_FAILED: {target} ({exc})")
            return False
        logger.info(f"CLEANUP: removed partial output {target}")
        return True
