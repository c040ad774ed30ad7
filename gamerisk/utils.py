# gamerisk/utils.py

import os
import logging
import pandas as pd  # type: ignore
import yaml  # type: ignore
from dotenv import load_dotenv  # type: ignore
from typing import Any, Dict, List, Optional

load_dotenv()

logger = logging.getLogger(__name__)


# ============================================================
# 📁 DIRECTORY MANAGEMENT
# ============================================================

# Absolute path to this file
current_file = os.path.abspath(__file__)

# Project root = 2 levels above (gamerisk/utils.py → gamerisk → project)
project_root = os.path.dirname(os.path.dirname(current_file))

# --- Project-level paths ---
data_path = os.path.join(project_root, "data")
reports_path = os.path.join(project_root, "reports")
config_path = os.path.join(project_root, "config")

# --- Data directories ---
csv_path = os.path.join(data_path, "csv")
sql_path = os.path.join(data_path, "sql")

raw_data_path = os.path.join(csv_path, "raw")
processed_data_path = os.path.join(csv_path, "processed")
view_processed_path = os.path.join(processed_data_path, "views")

# --- Reports ---
cohort_reports_path = os.path.join(reports_path, "cohorts")

DEFAULT_CONFIG_FILE = os.path.join(config_path, "risk_config.yaml")


# ============================================================
# ⚙️ CONFIG UTILITIES
# ============================================================

def load_yaml(path: str) -> Dict[str, Any]:
    """General YAML loader with validation."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"❌ YAML file not found: {path}")

    try:
        with open(path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"❌ Invalid YAML in {path}: {e}")

    if config is None:
        raise ValueError(f"❌ YAML file empty: {path}")
    if not isinstance(config, dict):
        raise ValueError(f"❌ YAML root must be a mapping: {path}")

    logger.info(f"✅ Loaded YAML: {path}")
    return config


def resolve_config_file(config_file: Optional[str] = None) -> str:
    """
    Resolve which config file to read.

    Order: explicit argument, ``GAMERISK_CONFIG`` environment variable,
    ``config/risk_config.yaml`` in the project root.
    """
    return config_file or os.getenv("GAMERISK_CONFIG") or DEFAULT_CONFIG_FILE


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the engine YAML config.

    Only the default project file may be absent (an empty dict is returned
    so callers fall back to built-in defaults). Explicitly requested files
    and malformed YAML raise.
    """
    final_path = resolve_config_file(config_file)

    if final_path == DEFAULT_CONFIG_FILE and not os.path.exists(final_path):
        logger.warning(f"⚠️ Default config not found at '{final_path}', using built-in defaults")
        return {}

    return load_yaml(final_path)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging; level defaults to ``GAMERISK_LOG_LEVEL`` or INFO."""
    level_name = (level or os.getenv("GAMERISK_LOG_LEVEL", "INFO")).upper()
    if not hasattr(logging, level_name):
        raise ValueError(f"❌ Unknown log level '{level_name}'")

    logging.basicConfig(
        level=getattr(logging, level_name),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================
# 🧮 DATAFRAME UTILITIES
# ============================================================

def group_summary(df: pd.DataFrame, group_cols: List[str], metrics: Dict[str, str],
                  sort_by: str = None, top_n: int = None) -> pd.DataFrame:
    result = df.groupby(group_cols, observed=True).agg(metrics).reset_index()

    if sort_by and sort_by in result.columns:
        result = result.sort_values(sort_by, ascending=False)

    if top_n:
        result = result.head(top_n)

    return result.round(2)


def share_table(series: pd.Series, name: str = "count") -> pd.DataFrame:
    """Counts and percentage share of each value, largest first."""
    counts = series.value_counts().rename(name)
    table = counts.reset_index()
    table.columns = [series.name or "value", name]
    total = table[name].sum()
    table["percentage"] = (table[name] / total * 100).round(2) if total else 0.0
    return table


# ============================================================
# 🔍 PATH RESOLVER
# ============================================================

def get_path(path_type: str) -> str:
    """
    Convenient path resolver with automatic directory creation.

    Returns any project directory path based on a keyword.
    """

    paths = {
        # Project root structure
        "project": project_root,

        # Config
        "config": config_path,

        # Data-level folders
        "data": data_path,
        "csv": csv_path,
        "sql": sql_path,
        "raw": raw_data_path,
        "processed": processed_data_path,
        "views": view_processed_path,

        # Reports
        "reports": reports_path,
        "cohorts": cohort_reports_path,
    }

    if path_type not in paths:
        raise ValueError(
            f"❌ Unknown path type '{path_type}'. Allowed values: {list(paths.keys())}"
        )

    resolved = os.path.abspath(paths[path_type])
    os.makedirs(resolved, exist_ok=True)
    return resolved
