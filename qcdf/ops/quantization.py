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
"""Quantization of probability mass functions into integer CDFs."""

from __future__ import annotations

import numbers

from absl import logging
import chex
import numpy as np
from qcdf.ops import correction
from qcdf.ops import errors

MAX_PRECISION = 16

# Largest accepted pmf sum. Larger rows would overflow integer masses or take
# an unbounded number of correction steps.
MAX_PMF_SUM = 16.0


def check_precision(precision) -> int:
  """Returns `precision` as `int`, raising if it is not in [1, 16]."""
  if (isinstance(precision, bool) or
      not isinstance(precision, numbers.Integral)):
    raise errors.InvalidArgumentError(
        f"`precision` must be an integer: {precision!r}")
  if not 0 < precision <= MAX_PRECISION:
    raise errors.InvalidArgumentError(
        f"`precision` must be in [1, {MAX_PRECISION}]: {precision}")
  return int(precision)


def check_pmf(pmf, min_rank: int = 1, max_rank: int | None = None):
  """Converts `pmf` to a floating point array and validates it.

  Negative and non-finite entries are rejected, and so are pmfs summing to more
  than `MAX_PMF_SUM`. Quantizing them would not produce a meaningful coding
  distribution.

  Args:
    pmf: Array-like of pmf values. The last axis enumerates symbols.
    min_rank: Minimum number of dimensions.
    max_rank: Maximum number of dimensions, or `None` for no limit.

  Returns:
    The pmf as a NumPy array. Floating point inputs keep their dtype, anything
    else is converted to float64.

  Raises:
    InvalidArgumentError: Wrong rank, fewer than 2 symbols or a non-numeric
      dtype.
    MalformedPmfError: A negative, NaN or infinite entry, or a sum along the
      last axis above `MAX_PMF_SUM`.
  """
  try:
    pmf = np.asarray(pmf)
  except ValueError as e:
    raise errors.InvalidArgumentError(f"`pmf` is not an array: {e}") from e
  if pmf.dtype.kind not in "biuf":
    raise errors.InvalidArgumentError(
        f"`pmf` must be real valued, got dtype {pmf.dtype}.")
  if pmf.dtype.kind != "f":
    pmf = pmf.astype(np.float64)

  if pmf.ndim < min_rank:
    raise errors.InvalidArgumentError(
        f"`pmf` should be at least {min_rank}-D: shape={pmf.shape}")
  if max_rank is not None and pmf.ndim > max_rank:
    raise errors.InvalidArgumentError(
        f"`pmf` should be at most {max_rank}-D: shape={pmf.shape}")
  if pmf.shape[-1] < 2:
    raise errors.InvalidArgumentError(
        f"`pmf` size should be at least 2 in the last axis: shape={pmf.shape}")

  if not np.all(np.isfinite(pmf)) or np.any(pmf < 0):
    raise errors.MalformedPmfError(
        "`pmf` has a non-finite or negative member. Please check for numerical "
        "problems in the probability computation.")
  with np.errstate(over="ignore"):
    psum = pmf.sum(axis=-1, dtype=np.float64)
  if np.any(psum > MAX_PMF_SUM):
    raise errors.MalformedPmfError(
        f"`pmf` sums to more than {MAX_PMF_SUM} along the last axis: "
        f"max sum={np.max(psum)}")
  return pmf


def check_feasible(num_symbols: int, precision: int) -> None:
  """Raises unless `num_symbols` positive masses can sum to `2**precision`."""
  if num_symbols > (1 << precision):
    raise errors.InfeasiblePrecisionError(
        f"Alphabet size {num_symbols} exceeds 2**precision = {1 << precision}; "
        f"increase `precision` to at least {(num_symbols - 1).bit_length()}.")


def initial_masses(pmf: np.ndarray, precision: int) -> np.ndarray:
  """Rounds `pmf * 2**precision` to the nearest integers, at least 1.

  Every symbol keeps a nonzero mass, even when its probability is zero, so that
  it can still be encoded.

  Args:
    pmf: Floating point array of pmf values.
    precision: Number of bits of the normalizer.

  Returns:
    An int64 array of the same shape as `pmf`.
  """
  qmf = np.rint(pmf * (1 << precision))
  return np.maximum(qmf, 1).astype(np.int64)


def quantize_pmf(pmf, precision: int, *, validate: bool = True) -> np.ndarray:
  """Quantizes a pmf into integer masses summing to `2**precision`.

  Masses are first rounded from `pmf * 2**precision` (see `initial_masses()`),
  then corrected one unit at a time by `CorrectionQueue` until the sum is
  exact. The pmf does not need to be normalized, but corrections cost more
  steps the further its sum is from 1.

  Args:
    pmf: 1-D array-like of non-negative finite pmf values, at least 2 symbols.
    precision: An integer in [1, 16].
    validate: Whether to validate `pmf` and `precision`. Callers that already
      validated a whole batch pass `False`.

  Returns:
    An int32 array of the same shape as `pmf`. Every entry is at least 1 and
    the entries sum to `2**precision`.

  Raises:
    InvalidArgumentError: See `check_precision()` and `check_pmf()`.
    InfeasiblePrecisionError: `pmf.size > 2**precision`.
  """
  if validate:
    precision = check_precision(precision)
    pmf = check_pmf(pmf, min_rank=1, max_rank=1)
  check_feasible(pmf.size, precision)

  normalizer = 1 << precision
  qmf = initial_masses(pmf, precision)
  excess = int(qmf.sum()) - normalizer
  if excess:
    direction = correction.SURPLUS if excess > 0 else correction.DEFICIT
    queue = correction.CorrectionQueue(qmf, pmf.tolist(), direction)
    queue.run(abs(excess))
  logging.vlog(2, "Applied %d correction steps to %d symbols.",
               abs(excess), pmf.size)

  chex.assert_equal(int(qmf.sum()), normalizer)
  chex.assert_scalar_positive(int(qmf.min()))
  return qmf.astype(np.int32)


def masses_to_cdf(qmf) -> np.ndarray:
  """Prefix-sums quantized masses along the last axis, with a leading zero.

  Args:
    qmf: Integer array of quantized masses, shape `(..., n)`.

  Returns:
    An int32 array of shape `(..., n + 1)` where `cdf[..., 0] == 0` and
    `cdf[..., i + 1] - cdf[..., i] == qmf[..., i]`.
  """
  qmf = np.asarray(qmf)
  cdf = np.zeros(qmf.shape[:-1] + (qmf.shape[-1] + 1,), dtype=np.int32)
  np.cumsum(qmf, axis=-1, out=cdf[..., 1:])
  return cdf


def cdf_to_masses(cdf) -> np.ndarray:
  """Inverse of `masses_to_cdf()`."""
  return np.diff(np.asarray(cdf), axis=-1)


def quantize_pmf_to_cdf(pmf, precision: int) -> np.ndarray:
  """Transforms a pmf into a quantized CDF for entropy coding.

  `cdf` is a 1-D array of size n + 1 where `cdf[a]` is the quantized value of
  `Pr(X < a)` for `a = 0, 1, ..., n - 1` and `cdf[n] == 2**precision`. Each
  symbol has a coding interval of at least one unit: `cdf[a] < cdf[a + 1]`.

  Note that the quantization uses floating point arithmetic. To decode on a
  different platform, transmit or store the quantized CDF rather than
  recomputing it from the pmf.

  Args:
    pmf: 1-D array-like of n >= 2 non-negative finite pmf values.
    precision: An integer in [1, 16].

  Returns:
    An int32 array of size n + 1.

  Raises:
    InvalidArgumentError: `precision` or `pmf` shape is invalid.
    MalformedPmfError: `pmf` has a negative or non-finite entry.
    InfeasiblePrecisionError: n > 2**precision.
  """
  return masses_to_cdf(quantize_pmf(pmf, precision))
