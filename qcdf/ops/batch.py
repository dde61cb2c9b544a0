# Copyright 2024 qcdf authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
"""Batched quantization of probability mass functions."""

from __future__ import annotations

import concurrent.futures
import math
import multiprocessing
import os

from absl import logging
import numpy as np
from qcdf.ops import errors
from qcdf.ops import fingerprint
from qcdf.ops import quantization
from qcdf.ops import vectorized

BACKENDS = ("processes", "vectorized")

# Shards smaller than this estimated cost are merged, see `shard_bounds()`.
MIN_SHARD_COST = 200_000


def row_cost(num_symbols: int) -> int:
  """Estimated cost of quantizing one row of `num_symbols` symbols."""
  return max(1, int(50.0 * num_symbols * math.log2(num_symbols)))


def shard_bounds(num_rows: int,
                 cost_per_row: int,
                 num_workers: int) -> list[tuple[int, int]]:
  """Partitions `range(num_rows)` into contiguous `(start, limit)` shards.

  Each shard costs at least `MIN_SHARD_COST` when possible, and there are at
  most four shards per worker so that a slow shard does not leave the other
  workers idle for long.

  Args:
    num_rows: Number of rows in the batch.
    cost_per_row: Estimated cost of one row, e.g. `row_cost(n)`.
    num_workers: Number of workers that will run the shards.

  Returns:
    A non-empty list of shards covering all rows in order.
  """
  min_rows = -(-MIN_SHARD_COST // cost_per_row)
  num_shards = min(4 * num_workers, num_rows // min_rows)
  num_shards = max(1, num_shards)
  return [(num_rows * i // num_shards, num_rows * (i + 1) // num_shards)
          for i in range(num_shards)]


def _unique_rows(rows: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
  """Like `np.unique(rows, axis=0, return_index, return_inverse)`, unsorted."""
  buckets = {}
  unique_index = []
  inverse = np.empty(rows.shape[0], dtype=np.intp)
  for i, row in enumerate(rows):
    candidates = buckets.setdefault(fingerprint.fingerprint64(row), [])
    for j in candidates:
      if np.array_equal(rows[unique_index[j]], row):
        inverse[i] = j
        break
    else:
      candidates.append(len(unique_index))
      inverse[i] = len(unique_index)
      unique_index.append(i)
  return np.asarray(unique_index, dtype=np.intp), inverse


def _quantize_shard(rows: np.ndarray, precision: int) -> np.ndarray:
  """Quantizes a block of rows. Runs in a worker process."""
  cdf = np.empty((rows.shape[0], rows.shape[1] + 1), dtype=np.int32)
  for i, row in enumerate(rows):
    qmf = quantization.quantize_pmf(row, precision, validate=False)
    cdf[i] = quantization.masses_to_cdf(qmf)
  return cdf


def _quantize_processes(rows: np.ndarray,
                        precision: int,
                        num_workers: int) -> np.ndarray:
  """Quantizes rows on a process pool.

  Each shard returns its block of CDF rows and the blocks are written into
  disjoint row ranges of the output.
  """
  num_rows, n = rows.shape
  shards = shard_bounds(num_rows, row_cost(n), num_workers)
  logging.vlog(1, "Quantizing %d rows of %d symbols in %d shard(s).",
               num_rows, n, len(shards))
  if len(shards) == 1 or num_workers == 1:
    return _quantize_shard(rows, precision)

  cdf = np.empty((num_rows, n + 1), dtype=np.int32)
  # Jax is multithreaded, so worker processes are spawned rather than forked.
  with concurrent.futures.ProcessPoolExecutor(
      max_workers=min(num_workers, len(shards)),
      mp_context=multiprocessing.get_context("spawn")) as executor:
    futures = {
        executor.submit(_quantize_shard, rows[start:limit], precision): start
        for start, limit in shards
    }
    try:
      for future in concurrent.futures.as_completed(futures):
        block = future.result()
        start = futures[future]
        cdf[start:start + block.shape[0]] = block
    except Exception:
      for future in futures:
        future.cancel()
      raise
  return cdf


def _quantize_vectorized(rows: np.ndarray, precision: int) -> np.ndarray:
  cdf = np.asarray(vectorized.quantize_pmf_to_cdf_batch(rows, precision))
  failed = np.flatnonzero(np.any(cdf < 0, axis=-1))
  if failed.size:
    raise errors.InfeasiblePrecisionError(
        f"Quantization failed for rows {failed.tolist()} at precision "
        f"{precision}.")
  return cdf.astype(np.int32)


def quantize_pmf_batch(pmf_rows,
                       precision: int,
                       *,
                       backend: str = "processes",
                       num_workers: int | None = None,
                       deduplicate: bool = False) -> np.ndarray:
  """Transforms a batch of pmfs into quantized CDFs.

  Rows are quantized independently: row `i` of the result equals
  `quantize_pmf_to_cdf(pmf_rows[i], precision)` for the `"processes"` backend,
  regardless of `num_workers` and `deduplicate`.

  All arguments and rows are validated before any row is quantized. When a row
  fails, the whole batch fails and no output is returned.

  Args:
    pmf_rows: Array-like of shape `(..., n)` with n >= 2. Leading axes are
      batch axes. A 1-D input is a batch of one row.
    precision: An integer in [1, 16].
    backend: `"processes"` quantizes rows with NumPy on a process pool.
      `"vectorized"` quantizes all rows at once in Jax; it uses the Jax default
      float dtype and may break near-ties differently.
    num_workers: Number of worker processes for the `"processes"` backend. `None` or 0
      means `os.cpu_count()`.
    deduplicate: Whether to quantize repeated rows only once. Rows are matched
      by fingerprint and compared by value.

  Returns:
    An int32 array of shape `(..., n + 1)`.

  Raises:
    InvalidArgumentError: Invalid `precision`, shape, `backend` or
      `num_workers`.
    MalformedPmfError: A negative or non-finite entry.
    InfeasiblePrecisionError: n > 2**precision.
  """
  precision = quantization.check_precision(precision)
  pmf = quantization.check_pmf(pmf_rows, min_rank=1)
  if backend not in BACKENDS:
    raise errors.InvalidArgumentError(
        f"`backend` must be one of {BACKENDS}: {backend!r}")
  if not num_workers:
    num_workers = os.cpu_count() or 1
  if num_workers < 0:
    raise errors.InvalidArgumentError(
        f"`num_workers` must be non-negative: {num_workers}")
  *batch_shape, n = pmf.shape
  quantization.check_feasible(n, precision)

  rows = pmf.reshape(-1, n)
  if not rows.shape[0]:
    return np.zeros((*batch_shape, n + 1), dtype=np.int32)

  if deduplicate:
    unique_index, inverse = _unique_rows(rows)
    logging.vlog(1, "Found %d unique rows out of %d.",
                 unique_index.size, rows.shape[0])
    rows = rows[unique_index]

  if backend == "processes":
    cdf = _quantize_processes(rows, precision, num_workers)
  else:
    cdf = _quantize_vectorized(rows, precision)

  if deduplicate:
    cdf = cdf[inverse]
  return cdf.reshape(*batch_shape, n + 1)
