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
"""Quantization of probability mass functions in Jax."""

import functools

import chex
import jax
from qcdf.ops import quantization

jnp = jax.numpy
lax = jax.lax


def quantize_distribution(pmf: chex.Array, precision: int) -> chex.Array:
  """Quantizes pmf for entropy coding.

  Jax does not have a way to return error status, in particular when jit
  compiled. Therefore in case of error, instead of raising exceptions, the
  returned array shall be filled with negative values.

  Let `qmf` denote the returned quantized array. On success:

  - `qmf[i] >= 1` for every index, including those where `pmf[i] == 0`.
  - `qmf.sum() == 2**precision`.

  The result is filled with -1 when `pmf` has a negative or non-finite entry,
  when `pmf` sums to more than `quantization.MAX_PMF_SUM`, or when
  `pmf.size > 2**precision`.

  Args:
    pmf: 1-D float array of probability mass function.
    precision: A Python integer in [1, 16].

  Returns:
    A 1-D int32 array of the same shape as `pmf`.
  """
  pmf = jnp.asarray(pmf)
  chex.assert_type(pmf, float)
  chex.assert_rank(pmf, 1)
  chex.assert_scalar_in(precision, 1, 16)
  normalizer = 1 << precision

  no_error = jnp.all(jnp.isfinite(pmf)) & jnp.all(pmf >= 0)
  no_error &= pmf.sum() <= quantization.MAX_PMF_SUM
  no_error &= pmf.size <= normalizer

  # Under vmap all branches below execute, so sanitize the inputs of failing
  # rows to keep their loops short.
  pmf = jnp.where(no_error, pmf, 0)
  qmf = jnp.round(pmf * normalizer).astype(jnp.int32).clip(min=1)
  qmf = jnp.where(no_error, qmf, 1)

  branch_index = (qmf.sum() < normalizer).astype(jnp.int32)
  increment_branch = functools.partial(_increment_branch, normalizer=normalizer)
  decrement_branch = functools.partial(_decrement_branch, normalizer=normalizer)

  return lax.switch(
      jnp.where(no_error, branch_index, 2),
      # Return array of -1s in case of error.
      [decrement_branch, increment_branch, lambda *_: jnp.full_like(qmf, -1)],
      pmf, qmf,
  )


def _penalty(weight, mass):
  mass = mass.astype(weight.dtype)
  return jnp.where(
      mass > 1, weight * (jnp.log2(mass) - jnp.log2(mass - 1)), jnp.inf)


def _gain(weight, mass):
  mass = mass.astype(weight.dtype)
  return jnp.where(
      mass > 0, weight * (jnp.log2(mass + 1) - jnp.log2(mass)), -jnp.inf)


# REQUIRES: `qmf.sum() <= normalizer`.
def _increment_branch(pmf, qmf, normalizer: int):
  """Iteratively increments qmf for qmf.sum() to reach normalizer."""
  gain = _gain(pmf, qmf)

  def body_fn(_, carry):
    gain, qmf = carry
    pos = jnp.argmax(gain)
    mass = qmf[pos] + 1
    return gain.at[pos].set(_gain(pmf[pos], mass)), qmf.at[pos].set(mass)

  _, qmf = lax.fori_loop(qmf.sum(), normalizer, body_fn, (gain, qmf))
  return qmf


# REQUIRES: `normalizer <= qmf.sum()`.
def _decrement_branch(pmf, qmf, normalizer: int):
  """Iteratively decrements qmf for qmf.sum() to reach normalizer."""
  penalty = _penalty(pmf, qmf)

  def body_fn(_, carry):
    penalty, qmf = carry
    pos = jnp.argmin(penalty)
    mass = qmf[pos] - 1  # assert mass >= 1
    return penalty.at[pos].set(_penalty(pmf[pos], mass)), qmf.at[pos].set(mass)

  _, qmf = lax.fori_loop(normalizer, qmf.sum(), body_fn, (penalty, qmf))
  return qmf


@functools.partial(jax.jit, static_argnums=1)
def quantize_pmf_to_cdf_batch(pmf: chex.Array, precision: int) -> jax.Array:
  """Quantizes each row of a 2-D pmf array into a CDF.

  Args:
    pmf: 2-D float array. Each row is a pmf, see `quantize_distribution()`.
    precision: A Python integer in [1, 16].

  Returns:
    An int32 array of shape `(pmf.shape[0], pmf.shape[1] + 1)`. Rows that
    failed to quantize are filled with -1.
  """
  chex.assert_rank(pmf, 2)
  qmf = jax.vmap(lambda row: quantize_distribution(row, precision))(pmf)
  cdf = jnp.pad(jnp.cumsum(qmf, axis=-1), ((0, 0), (1, 0)))
  return jnp.where(jnp.any(qmf < 0, axis=-1, keepdims=True), -1, cdf)
