"""
seeds — The shipped seed configurations.

  STATIC_SEEDS     — reference tables from the data directory, in order
  geography_seeds  — geography levels for a seed mode, in hierarchy order
"""

from censusdata_pipeline.seeds.geography import GEOGRAPHY_SEEDS, geography_seeds
from censusdata_pipeline.seeds.reference import STATIC_SEEDS

__all__ = ["STATIC_SEEDS", "GEOGRAPHY_SEEDS", "geography_seeds"]
