"""Persistence of default settings to the application .env file."""

from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from ..config import ENV_FILE_PATH

logger = structlog.get_logger()


def update_env_file(updates: Dict[str, Any], env_file: Optional[Path] = None) -> bool:
    """
    Set KEY=value entries in the .env file, creating it when missing.

    Keys are upper-cased. Existing assignments are rewritten in place,
    new keys are appended, comments are kept. None values are skipped.

    Returns:
        True on success, False when the file could not be written
    """
    path = Path(env_file) if env_file is not None else ENV_FILE_PATH
    pending = {key.upper(): value for key, value in updates.items() if value is not None}

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        current = path.read_text(encoding="utf-8").splitlines() if path.exists() else []

        output: List[str] = []
        for line in current:
            name, sep, _ = line.partition("=")
            name = name.strip().upper()
            if sep and not line.lstrip().startswith("#") and name in pending:
                output.append(f"{name}={pending.pop(name)}")
            else:
                output.append(line)
        output.extend(f"{name}={value}" for name, value in pending.items())

        path.write_text("\n".join(output) + "\n", encoding="utf-8")
    except OSError as e:
        logger.error("Failed to update env file", path=str(path), error=str(e))
        return False

    logger.info("Updated env file", path=str(path), keys=sorted(k.upper() for k, v in updates.items() if v is not None))
    return True
