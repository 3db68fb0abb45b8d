# sacn_receiver/config_loader.py
from typing import List
import pandas as pd

from e131.e131 import is_valid_universe


def load_universes_from_sheet(path: str, column: str = "Universe", sheet_name: str = "sACN") -> List[int]:
    """
    Charge la liste des univers à écouter depuis une feuille de patch
    (.xlsx/.xls via read_excel, sinon CSV). Les lignes vides ou hors
    1..63999 sont ignorées. Retourne les univers triés, sans doublons.
    """
    if path.lower().endswith((".xlsx", ".xls")):
        df = pd.read_excel(path, sheet_name=sheet_name)
    else:
        df = pd.read_csv(path)
    df = df.rename(columns={c: c.strip() for c in df.columns})
    if column not in df.columns:
        raise ValueError(f"column {column!r} not found in {path} (columns: {list(df.columns)})")

    values = pd.to_numeric(df[column], errors="coerce").dropna().astype(int)
    return sorted({int(u) for u in values if is_valid_universe(int(u))})
