"""Base configuration for pmf quantization."""

import ml_collections


def get_config():
  """Base configuration."""
  return ml_collections.ConfigDict(dict(
      label="base configuration",

      precision=16,
      backend="processes",
      num_workers=0,
      deduplicate=False,

      report_overhead=True,
  ))
