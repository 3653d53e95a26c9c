"""敏感欄位加密/解密與遮罩 - 月結匯款帳號"""
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet
from app.config import settings

_fernet_instance: Optional[Fernet] = None


def _fernet() -> Optional[Fernet]:
    """ENCRYPTION_KEY 須為 Fernet 金鑰（32 bytes base64，約 44 字元），可由 Fernet.generate_key() 產生"""
    global _fernet_instance
    if _fernet_instance is not None:
        return _fernet_instance
    key = settings.encryption_key
    if not key or len(key) < 44:
        return None
    try:
        _fernet_instance = Fernet(key.encode("utf-8") if isinstance(key, str) else key)
        return _fernet_instance
    except Exception:
        return None


def reset_fernet() -> None:
    """金鑰變更後（測試或重新載入設定）清除快取"""
    global _fernet_instance
    _fernet_instance = None


def encrypt(plain: Optional[str]) -> Optional[str]:
    """加密字串，若未設定 key 或為空則回傳原值"""
    if not plain:
        return plain
    f = _fernet()
    if not f:
        return plain
    try:
        return f.encrypt(plain.encode("utf-8")).decode("utf-8")
    except Exception:
        return plain


def decrypt(cipher: Optional[str]) -> Optional[str]:
    """解密；若未加密或無 key 則回傳原值。若解密失敗（非加密內容）則回傳原值"""
    if not cipher:
        return cipher
    f = _fernet()
    if not f:
        return cipher
    try:
        return f.decrypt(cipher.encode("utf-8")).decode("utf-8")
    except Exception:
        return cipher


def mask_bank_account(value: Optional[str]) -> str:
    """銀行帳號遮罩：僅顯示後 4 碼"""
    if not value or len(value) < 4:
        return "****"
    return "****" + value[-4:]


def _map_accounts(progress: Dict[str, Any], fn) -> Dict[str, Any]:
    out = dict(progress or {})
    companies = {}
    for key, company in (out.get("companies") or {}).items():
        company = dict(company or {})
        if company.get("account_number"):
            company["account_number"] = fn(company["account_number"])
        companies[key] = company
    out["companies"] = companies
    return out


def encrypt_progress_accounts(progress: Dict[str, Any]) -> Dict[str, Any]:
    """進度 JSON 寫入 DB 前，將各公司 account_number 加密"""
    return _map_accounts(progress, encrypt)


def decrypt_progress_accounts(progress: Dict[str, Any]) -> Dict[str, Any]:
    return _map_accounts(progress, decrypt)
