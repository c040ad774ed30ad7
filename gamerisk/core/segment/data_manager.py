# core/segment/data_manager.py

import os
import logging
from typing import Dict, Optional

import pandas as pd  # type: ignore
import yaml  # type: ignore

from ... import utils
from .view import RiskView

logger = logging.getLogger(__name__)


class ViewExporter:
    """
    Handles saving of views and their reports to CSV.
    """

    def __init__(self, output_dir: Optional[str] = None):
        """
        Initialize exporter.

        Parameters
        ----------
        output_dir : str, optional
            Directory for output files; defaults to the project's views folder
        """
        self.output_dir = output_dir or utils.get_path("views")
        os.makedirs(self.output_dir, exist_ok=True)

    def save_view(self, view: RiskView, coverage: Optional[pd.DataFrame] = None) -> Dict[str, str]:
        """
        Save one read of a view, its rule definition and optionally its
        condition coverage.

        Returns
        -------
        Dict[str, str]
            Written file paths by kind
        """
        logger.info(f"[STEP 5] Saving view '{view.name}'...")
        paths = {"view": self._save_rows(view)}
        paths["rule"] = self._save_rule(view)
        if coverage is not None:
            paths["coverage"] = self.save_frame(coverage, f"{view.name}_coverage")

        logger.info(f"💾 ALL FILES SAVED TO: {self.output_dir}")
        return paths

    def _save_rows(self, view: RiskView) -> str:
        path = os.path.join(self.output_dir, f"{view.name}_view.csv")
        df = view.to_frame()
        # one cell per row: condition names joined by '|'
        df["fired"] = df["fired"].map("|".join)
        df.to_csv(path, index=False)
        logger.info(f"   ✅ Saved view: {path}")
        logger.info(f"   - Rows: {len(df):,}")
        return path

    def _save_rule(self, view: RiskView) -> str:
        path = os.path.join(self.output_dir, f"{view.name}_rule.yaml")
        with open(path, "w") as f:
            yaml.safe_dump({view.name: view.rule.to_config()}, f, sort_keys=False)
        logger.info(f"   ✅ Saved rule definition: {path}")
        return path

    def save_frame(self, df: pd.DataFrame, name: str, index: bool = False) -> str:
        """Save any report frame as ``<name>.csv``."""
        path = os.path.join(self.output_dir, f"{name}.csv")
        df.to_csv(path, index=index)
        logger.info(f"   ✅ Saved {name}: {path}")
        return path
