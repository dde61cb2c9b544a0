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
"""Tests for pmf quantization."""

from absl import logging
import chex
import numpy as np
import pytest
from qcdf.ops import correction
from qcdf.ops import cost
from qcdf.ops import errors
from qcdf.ops import quantization


rng = np.random.default_rng()


def _check_cdf(pmf, cdf, precision):
  pmf = np.asarray(pmf)
  assert cdf.shape == (pmf.size + 1,)
  assert cdf.dtype == np.int32
  assert cdf[0] == 0
  assert cdf[-1] == 1 << precision
  np.testing.assert_array_less(0, np.diff(cdf))


def _random_pmf(size):
  pmf = rng.random(size)
  return pmf / pmf.sum()


def test_two_halves_at_one_bit():
  cdf = quantization.quantize_pmf_to_cdf([0.5, 0.5], 1)
  np.testing.assert_array_equal(cdf, [0, 1, 2])


def test_surplus_decrements_lowest_penalty():
  pmf = [0.1, 0.1, 0.8]
  precision = 4
  initial = quantization.initial_masses(np.asarray(pmf), precision)
  np.testing.assert_array_equal(initial, [2, 2, 13])

  qmf = quantization.quantize_pmf(pmf, precision)
  assert qmf.sum() == 16
  np.testing.assert_array_less(0, qmf)

  penalties = [correction.decrement_penalty(w, v)
               for w, v in zip(pmf, initial)]
  expected = initial.copy()
  expected[np.argmin(penalties)] -= 1
  np.testing.assert_array_equal(qmf, expected)


def test_deficit_increments_highest_gain():
  pmf = [0.33, 0.33, 0.34]
  precision = 4
  initial = quantization.initial_masses(np.asarray(pmf), precision)
  assert initial.sum() == 15

  gains = [correction.increment_gain(w, v) for w, v in zip(pmf, initial)]
  expected = initial.copy()
  expected[np.argmax(gains)] += 1

  qmf = quantization.quantize_pmf(pmf, precision)
  np.testing.assert_array_equal(qmf, expected)


def test_zero_probabilities_keep_one_unit():
  cdf = quantization.quantize_pmf_to_cdf([0., 0., 1.], 2)
  np.testing.assert_array_equal(cdf, [0, 1, 2, 4])


@pytest.mark.parametrize("precision", [2, 8, 16])
def test_exact_input_is_unchanged(precision):
  n = min(1 << precision, int(rng.integers(2, 64)))
  # Random cut points give masses >= 1 that sum to the normalizer.
  cuts = np.sort(rng.choice(np.arange(1, 1 << precision), n - 1, replace=False))
  qmf = np.diff(np.r_[0, cuts, 1 << precision])
  pmf = qmf / (1 << precision)

  cdf = quantization.quantize_pmf_to_cdf(pmf, precision)
  np.testing.assert_array_equal(quantization.cdf_to_masses(cdf), qmf)


def test_float32_input():
  pmf = _random_pmf(30).astype(np.float32)
  cdf = quantization.quantize_pmf_to_cdf(pmf, 10)
  _check_cdf(pmf, cdf, 10)


def test_integer_input_is_promoted():
  # Unnormalized counts are accepted. The sum is far from 1, so many units
  # are moved.
  cdf = quantization.quantize_pmf_to_cdf([1, 2, 3], 8)
  _check_cdf([1, 2, 3], cdf, 8)


def test_unnormalized_input():
  pmf = 0.25 * _random_pmf(20)
  cdf = quantization.quantize_pmf_to_cdf(pmf, 12)
  _check_cdf(pmf, cdf, 12)


def test_fuzz():
  for _ in range(1000):
    n = int(rng.integers(2, 64, endpoint=True))
    min_precision = max(1, (n - 1).bit_length())
    precision = int(rng.integers(min_precision, 16, endpoint=True))
    pmf = _random_pmf(n)
    # Produce some zeros and some tiny values.
    pmf *= rng.random(n) < 0.9
    pmf[rng.random(n) < 0.1] = np.finfo(np.float32).eps
    # Make sure the row is not entirely zero.
    pmf[rng.integers(n)] += 0.1
    pmf /= pmf.sum()

    cdf = quantization.quantize_pmf_to_cdf(pmf, precision)
    _check_cdf(pmf, cdf, precision)


@pytest.mark.parametrize("precision", [10, 16])
def test_coding_cost_is_close_to_entropy(precision):
  size = int(rng.integers(40, 70))
  pmf = _random_pmf(size)
  qmf = quantization.quantize_pmf(pmf, precision)

  h = cost.entropy(pmf)
  qh = cost.cross_entropy(pmf, qmf)
  logging.info("Expected code length using pmf: %f", h)
  logging.info("Expected code length using quantized pmf: %f", qh)
  assert qh > h * (1 - np.finfo(np.float64).eps)
  assert cost.relative_overhead(pmf, qmf) < 0.03


def test_correction_is_no_worse_than_initial_rounding():
  # Compare with a naive fix that puts the whole difference on the largest
  # symbol.
  for _ in range(20):
    pmf = _random_pmf(int(rng.integers(3, 40)))
    precision = 8
    naive = quantization.initial_masses(pmf, precision)
    naive[np.argmax(naive)] += (1 << precision) - naive.sum()
    if naive.min() < 1:
      continue
    qmf = quantization.quantize_pmf(pmf, precision)
    assert (cost.cross_entropy(pmf, qmf) <=
            cost.cross_entropy(pmf, naive) + 1e-12)


def test_masses_to_cdf_batched():
  qmf = np.array([[1, 2, 5], [4, 2, 2]])
  cdf = quantization.masses_to_cdf(qmf)
  np.testing.assert_array_equal(cdf, [[0, 1, 3, 8], [0, 4, 6, 8]])
  np.testing.assert_array_equal(quantization.cdf_to_masses(cdf), qmf)


def test_infeasible_precision():
  with pytest.raises(errors.InfeasiblePrecisionError):
    quantization.quantize_pmf_to_cdf([0.2] * 5, 2)
  assert not issubclass(errors.InfeasiblePrecisionError,
                        errors.InvalidArgumentError)


def test_alphabet_equal_to_normalizer():
  cdf = quantization.quantize_pmf_to_cdf(_random_pmf(16), 4)
  np.testing.assert_array_equal(cdf, np.arange(17))


@pytest.mark.parametrize("precision", [0, 17, -1, 2.0, True, "8"])
def test_invalid_precision(precision):
  with pytest.raises(errors.InvalidArgumentError):
    quantization.quantize_pmf_to_cdf([0.5, 0.5], precision)


def test_numpy_integer_precision():
  cdf = quantization.quantize_pmf_to_cdf([0.5, 0.5], np.int64(3))
  np.testing.assert_array_equal(cdf, [0, 4, 8])


@pytest.mark.parametrize("pmf", [[1.0], [], 0.5, [[0.5, 0.5]], ["a", "b"]])
def test_invalid_shape(pmf):
  with pytest.raises(errors.InvalidArgumentError):
    quantization.quantize_pmf_to_cdf(pmf, 8)


@pytest.mark.parametrize("bad", [-0.1, np.nan, np.inf, -np.inf])
def test_malformed_pmf_is_rejected(bad):
  with pytest.raises(errors.MalformedPmfError):
    quantization.quantize_pmf_to_cdf([0.5, 0.5, bad], 8)


def test_result_shapes():
  pmf = _random_pmf(7)
  qmf = quantization.quantize_pmf(pmf, 6)
  cdf = quantization.quantize_pmf_to_cdf(pmf, 6)
  chex.assert_shape(qmf, (7,))
  chex.assert_shape(cdf, (8,))
  chex.assert_type([qmf, cdf], np.int32)


@pytest.mark.parametrize("pmf", [[1e300, 1.0], [1e15, 1.0], [10., 6.5]])
def test_large_values_are_rejected(pmf):
  with pytest.raises(errors.MalformedPmfError):
    quantization.quantize_pmf_to_cdf(pmf, 16)


def test_largest_accepted_sum():
  pmf = [quantization.MAX_PMF_SUM / 2] * 2
  cdf = quantization.quantize_pmf_to_cdf(pmf, 4)
  np.testing.assert_array_equal(cdf, [0, 8, 16])
