"""
Statistics loading for the map core.

Source data is a long-format table with one row per (statistic, parent
area, boundary type, area) value:

    stat_id, parent_area, boundary_type, area_id, value[, value_type]

Rows are folded into the raw table the aggregator consumes:

    stat_id -> parent_area -> {AreaKind: StatEntry}

An optional statistic catalog (stat_id, name, category, good_if_up) labels
markers and legends.
"""
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from .areas import parse_area_kind
from .errors import StatDataError
from .stat_aggregator import RawStatTable, make_stat_entry

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['stat_id', 'parent_area', 'boundary_type', 'area_id', 'value']
DEFAULT_VALUE_TYPE = 'count'

# Common spellings of boundary types in exported sheets
BOUNDARY_TYPE_ALIASES = {
    'ZCTA': 'ZIP',
    'ZIPCODE': 'ZIP',
    'ZIP_CODE': 'ZIP',
    'PRIMARY': 'ZIP',
    'AGGREGATE': 'COUNTY',
    'COUNTIES': 'COUNTY',
}


def normalize_stat_frame(df: pd.DataFrame) -> pd.DataFrame:
    """
    Clean a long-format statistics frame.

    - Column names lowercased and stripped
    - Ids and parent areas as trimmed strings
    - Boundary types mapped to 'ZIP' / 'COUNTY' (unknown types dropped)
    - Values coerced to numbers; non-finite values dropped

    Raises:
        StatDataError: If a required column is missing
    """
    df = df.copy()
    df.columns = [str(col).strip().lower() for col in df.columns]

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise StatDataError(f"Statistics data missing columns: {', '.join(missing)}")

    if 'value_type' not in df.columns:
        df['value_type'] = DEFAULT_VALUE_TYPE
    df['value_type'] = df['value_type'].fillna(DEFAULT_VALUE_TYPE).astype(str).str.strip()

    for col in ['stat_id', 'parent_area', 'area_id']:
        df[col] = df[col].astype(str).str.strip()

    kinds = df['boundary_type'].astype(str).str.strip().str.upper().replace(BOUNDARY_TYPE_ALIASES)
    df['boundary_type'] = kinds.apply(lambda value: getattr(parse_area_kind(value), 'value', None))

    df['value'] = pd.to_numeric(df['value'], errors='coerce')
    valid = df['boundary_type'].notna() & np.isfinite(df['value'])
    dropped = int((~valid).sum())
    if dropped:
        logger.info(f"Dropped {dropped} statistic rows with unknown boundary type or non-numeric value")

    return df[valid].reset_index(drop=True)


def build_raw_stat_table(df: pd.DataFrame) -> RawStatTable:
    """Fold a long-format frame into stat_id -> parent_area -> kind -> StatEntry."""
    df = normalize_stat_frame(df)
    table: Dict[str, Dict[str, dict]] = {}

    for (stat_id, parent_area, boundary_type), group in df.groupby(
        ['stat_id', 'parent_area', 'boundary_type'], sort=True
    ):
        kind = parse_area_kind(boundary_type)
        value_type = group['value_type'].iloc[0]
        # Later rows win on duplicate area ids
        values = dict(zip(group['area_id'], group['value']))
        table.setdefault(stat_id, {}).setdefault(parent_area, {})[kind] = make_stat_entry(value_type, values)

    logger.info(f"Built statistics table: {len(table)} stats from {len(df)} rows")
    return table


def load_stat_csv(csv_path: Path) -> pd.DataFrame:
    """
    Read a long-format statistics CSV.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Statistics CSV not found: {csv_path}")
    df = pd.read_csv(csv_path, dtype={'area_id': str, 'stat_id': str, 'parent_area': str})
    logger.info(f"Loaded {len(df)} statistic rows from {csv_path.name}")
    return df


def load_stat_catalog(df: pd.DataFrame) -> Dict[str, dict]:
    """
    Statistic metadata keyed by stat_id.

    Returns:
        Dict of stat_id -> {'name', 'category', 'good_if_up'}; good_if_up is
        True/False/None.
    """
    catalog = {}
    if 'stat_id' not in df.columns:
        return catalog

    def parse_flag(value) -> Optional[bool]:
        if pd.isna(value):
            return None
        text = str(value).strip().lower()
        if text in ('true', 'yes', '1', 'up'):
            return True
        if text in ('false', 'no', '0', 'down'):
            return False
        return None

    for _, row in df.drop_duplicates('stat_id', keep='last').iterrows():
        stat_id = str(row['stat_id']).strip()
        catalog[stat_id] = {
            'name': str(row['name']).strip() if 'name' in df.columns and pd.notna(row['name']) else stat_id,
            'category': str(row['category']).strip() if 'category' in df.columns and pd.notna(row['category']) else None,
            'good_if_up': parse_flag(row['good_if_up']) if 'good_if_up' in df.columns else None,
        }
    return catalog


def get_stat_options(table: RawStatTable, catalog: Optional[Dict[str, dict]] = None) -> List[dict]:
    """Dropdown options (id + display name), sorted by name."""
    catalog = catalog or {}
    options = [
        {'id': stat_id, 'name': catalog.get(stat_id, {}).get('name', stat_id)}
        for stat_id in table
    ]
    return sorted(options, key=lambda option: option['name'].lower())


class InMemoryStatStore:
    """
    Statistics store backed by an already-built raw table.

    Subscribers receive ``(raw_table, is_refreshing)``. The scope and
    priority calls are recorded; a store with remote data would use them
    to decide what to fetch next.
    """

    def __init__(self, table: Optional[RawStatTable] = None):
        self._table: RawStatTable = table or {}
        self._listeners: List[Callable[[RawStatTable, bool], None]] = []
        self.refreshing = False
        self.priority_ids: List[str] = []
        self.scope_names: List[str] = []

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> 'InMemoryStatStore':
        return cls(build_raw_stat_table(df))

    @classmethod
    def from_csv(cls, csv_path: Path) -> 'InMemoryStatStore':
        return cls.from_frame(load_stat_csv(csv_path))

    @property
    def table(self) -> RawStatTable:
        return self._table

    def prioritize(self, stat_ids: Iterable[str]) -> None:
        self.priority_ids = [stat_id for stat_id in stat_ids if stat_id]

    def set_scope(self, parent_names: Iterable[str]) -> None:
        self.scope_names = [name for name in parent_names if name]

    def subscribe(self, listener: Callable[[RawStatTable, bool], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        listener(self._table, self.refreshing)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def begin_refresh(self) -> None:
        self.refreshing = True
        self._publish()

    def publish(self, table: RawStatTable) -> None:
        """Replace the table and notify subscribers; ends any refresh in progress."""
        self._table = table
        self.refreshing = False
        self._publish()

    def _publish(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._table, self.refreshing)
            except Exception as e:
                logger.warning(f"Statistics subscriber failed: {e}")
