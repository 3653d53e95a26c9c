"""
月結原始資料上傳：xlsx / xls / ods（多 sheet）→ 原始列 dict（保留原表頭，附 source_sheet / row_number）。
欄位對應與型別檢查在 app.ob.row_normalizer 進行；這裡只負責讀檔與挑出表頭可辨識的 sheet。
"""
import io
import logging
from datetime import date, datetime
from typing import Any, Dict, List

import pandas as pd

from app.ob.row_normalizer import STREAM_ALIASES

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = ("xlsx", "xls", "ods")


class SourceParseError(ValueError):
    """原始資料檔無法解析（格式不符或找不到表頭）"""
    pass


def _cell(val: Any) -> Any:
    if val is None:
        return None
    if isinstance(val, (pd.Timestamp, datetime)):
        return val.strftime("%Y-%m-%d")
    if isinstance(val, date):
        return val.isoformat()
    if pd.isna(val):
        return None
    if hasattr(val, "item"):
        # numpy 純量
        return val.item()
    return val


def _recognized_columns(columns: List[Any], stream: str) -> int:
    aliases = STREAM_ALIASES[stream]
    known = {"".join(a.split()).lower() for names in aliases.values() for a in names}
    return sum(1 for c in columns if "".join(str(c).split()).lower() in known)


def parse_source_file(content: bytes, filename: str, stream: str) -> List[Dict[str, Any]]:
    if stream not in STREAM_ALIASES:
        raise SourceParseError(f"不支援的資料流：{stream}")
    ext = (filename or "").lower().split(".")[-1]
    if ext not in SOURCE_EXTENSIONS:
        raise SourceParseError("不支援的檔案格式，僅支援 xlsx / xls / ods")
    engine = {"ods": "odf", "xls": "xlrd"}.get(ext, "openpyxl")
    try:
        sheets = pd.read_excel(io.BytesIO(content), engine=engine, sheet_name=None, header=0)
    except Exception as e:
        logger.warning("讀取原始資料檔失敗 %s：%s", filename, e)
        raise SourceParseError("檔案無法讀取，請確認格式") from e

    rows: List[Dict[str, Any]] = []
    for sheet_name, df in (sheets or {}).items():
        if df is None or df.empty:
            continue
        columns = list(df.columns)
        if _recognized_columns(columns, stream) < 2:
            logger.info("略過 sheet %s：表頭不符 %s", sheet_name, stream)
            continue
        for idx, r in df.iterrows():
            values = {str(c).strip(): _cell(r.get(c)) for c in columns}
            if all(v is None or (isinstance(v, str) and not v.strip()) for v in values.values()):
                continue
            values.setdefault("source_sheet", str(sheet_name))
            values.setdefault("row_number", int(idx) + 2)
            rows.append(values)
    if not rows:
        raise SourceParseError("檔案沒有可辨識表頭的資料列")
    return rows
