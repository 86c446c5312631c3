"""
临时文件清理任务模块。

删除临时目录中修改时间超过 24 小时的文件（导出文件等）。目录不存在时直接返回。
"""
import asyncio
import logging
from datetime import datetime, timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

TEMP_FILE_MAX_AGE = timedelta(hours=24)


def _remove_stale_files(temp_dir: Path, cutoff_ts: float) -> list[str]:
    removed = []
    if not temp_dir.is_dir():
        return removed
    for path in temp_dir.iterdir():
        if not path.is_file():
            continue
        try:
            if path.stat().st_mtime < cutoff_ts:
                path.unlink()
                removed.append(path.name)
        except FileNotFoundError:
            continue
    return removed


async def cleanup_temp_files(temp_dir: str | Path, now: datetime) -> list[str]:
    """清理过期临时文件，返回被删除的文件名列表。"""
    cutoff = (now - TEMP_FILE_MAX_AGE).timestamp()
    removed = await asyncio.to_thread(_remove_stale_files, Path(temp_dir), cutoff)
    for name in removed:
        logger.info("Deleted temp file: %s", name)
    return removed
