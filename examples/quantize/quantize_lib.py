"""Quantizes a stored array of pmfs into CDFs."""

import os
from absl import logging
import numpy as np
from qcdf import ops


def load_pmf(path):
  """Loads a pmf array from a `.npy` file."""
  with open(path, "rb") as f:
    return np.load(f, allow_pickle=False)


def save_cdf(path, cdf):
  dirname = os.path.dirname(path)
  if dirname:
    os.makedirs(dirname, exist_ok=True)
  with open(path, "wb") as f:
    np.save(f, cdf, allow_pickle=False)


def quantize(config, pmf):
  """Quantizes `pmf` as configured and logs the coding overhead."""
  logging.info(
      "Quantizing pmf of shape %s at precision %d with backend %s.",
      pmf.shape, config.precision, config.backend)
  cdf = ops.quantize_pmf_batch(
      pmf,
      config.precision,
      backend=config.backend,
      num_workers=config.num_workers,
      deduplicate=config.deduplicate,
  )

  if config.report_overhead:
    overhead = ops.relative_overhead(pmf, ops.cdf_to_masses(cdf))
    logging.info(
        "Relative coding overhead: mean=%f, max=%f",
        np.mean(overhead), np.max(overhead))
  return cdf


def run(config, input_path, output_path):
  """Loads pmfs from `input_path`, writes quantized CDFs to `output_path`."""
  pmf = load_pmf(input_path)
  cdf = quantize(config, pmf)
  save_cdf(output_path, cdf)
  logging.info("Wrote CDF of shape %s to %s.", cdf.shape, output_path)
  return cdf
