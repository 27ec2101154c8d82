"""
Infrastructure — JSON 檔案持久化（每種快取一份文件）。
穩定排序、縮排輸出方便 diff；以暫存檔 + os.replace 原子寫入。
讀寫失敗只記錄 log，不拋出例外。
"""

import contextlib
import json
import os
import tempfile
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from logging_config import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class CacheStorage(Generic[M]):
    """將單一 pydantic model 讀寫至固定路徑。不快取已載入的值。"""

    def __init__(self, path: str, model: type[M]):
        self.path = path
        self._model = model

    def load(self) -> M | None:
        """檔案不存在或解碼失敗時回傳 None。"""
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                return self._model.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("快取檔讀取失敗 %s：%s", self.path, exc)
            return None

    def save(self, value: M) -> bool:
        """寫入成功回傳 True；建立目錄或寫入失敗回傳 False。"""
        payload = json.dumps(
            value.model_dump(mode="json"),
            sort_keys=True,
            indent=2,
            ensure_ascii=False,
        )
        directory = os.path.dirname(self.path) or "."
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            logger.error("無法建立快取目錄 %s：%s", directory, exc)
            return False

        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=directory, prefix=".tmp-", suffix=".json"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            return True
        except OSError as exc:
            logger.error("快取檔寫入失敗 %s：%s", self.path, exc)
            if tmp_path:
                with contextlib.suppress(OSError):
                    os.remove(tmp_path)
            return False
