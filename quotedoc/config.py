from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple
import json


BASE_DIR = Path(__file__).resolve().parent
OUT_DIR = BASE_DIR.parent / "out"
DB_PATH = OUT_DIR / "quotedoc.db"
STYLE_PRESET_PATH = BASE_DIR / "assets" / "brand" / "document_styles.json"
IMAGES_DIR = BASE_DIR / "assets" / "images"

# Page sizes in millimetres (width, height)
PAGE_FORMATS: Dict[str, Tuple[float, float]] = {
    "a4": (210.0, 297.0),
    "letter": (215.9, 279.4),
}

IMAGE_FILES: Dict[str, str] = {
    "logo": "logo.jpeg",
    "signature": "managerStamp.png",
    "stamp": "stamp.png",
}

COMPANY_NAME = "Almaakcorp sarl"
COMPANY_LINES: List[str] = [
    "ADDRESS: TERRITOIRE DE WATSA, DURBA/ DUEMBE",
    "GALLERIE MAHANAIM, ROOM 07, ID NAT: 19-F4300-N58465L",
    "N° IMPOT: A2408855C CNSS: 1020017400, ARSP: 4151855306",
    "RCCM: CD/GOM/RCCM/24-B-01525, VENDOR: 1075430",
    "Website: www.almaakcorp.com | Email: info@almaakcorp.com",
]

DEFAULT_BANK_DETAILS = "Bank details not provided"
INVOICE_BANK_DETAILS = "Bank: Equity BCDC | Account: 288200123855435 (USD)"
INVOICE_TERMS = (
    "Payment is due within 30 days. Late payments may incur a 1.5% monthly interest. "
    "All goods remain property of ALMAAKCORP SARL until fully paid."
)


def load_style_preset() -> dict:
    with STYLE_PRESET_PATH.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def asset_path(name: str) -> Optional[Path]:
    filename = IMAGE_FILES.get(name)
    if filename is None:
        return None
    path = IMAGES_DIR / filename
    return path if path.exists() else None


def load_assets() -> Dict[str, Optional[Path]]:
    return {name: asset_path(name) for name in IMAGE_FILES}


def set_out_dir(path: Path) -> None:
    global OUT_DIR, DB_PATH
    OUT_DIR = path
    DB_PATH = OUT_DIR / "quotedoc.db"
