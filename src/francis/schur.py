"""
Reduction of a general real matrix to real Schur form ``A = P @ T @ P.T``, where
``P`` is orthogonal and ``T`` is quasi upper triangular: upper triangular except
for ``2 x 2`` diagonal blocks that hold complex conjugate eigenvalue pairs.

Starting from the Hessenberg form of the matrix, the implicit double shift QR
algorithm (the Francis algorithm) is iterated on the trailing unreduced block
until it deflates into a ``1 x 1`` or ``2 x 2`` block. Stagnating iterations
are nudged by two ad hoc shifts, applied after 10 and 30 iterations on the same
block. The procedure is the ``hqr2`` routine from EISPACK as it appears in the
JAMA library, expressed with ``jax.lax`` control flow so that the whole
transform compiles to a single XLA computation.

Inside the compiled code a failure to converge is not an exception; it is
reported through the ``info`` field of :class:`SchurResult`. The
:class:`SchurTransformer` wrapper turns it into a :class:`ConvergenceError`.
"""

from __future__ import annotations

__all__ = [
    "ShiftInfo",
    "SchurResult",
    "SchurTransformer",
    "real_schur",
    "schur_transform",
]

import logging
from functools import partial
from typing import Any, NamedTuple

import equinox as eqx
import jax
import jax.numpy as jnp

from francis.errors import ConvergenceError
from francis.helpers import JAXArray, as_float_matrix, check_square
from francis.hessenberg import HessenbergTransformer, hessenberg_reduce

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 100
WILKINSON_SHIFT_ITERATION = 10
EXCEPTIONAL_SHIFT_ITERATION = 30


class ShiftInfo(NamedTuple):
    """The state of the QR shift

    Args:
        x: The current shift, or the trailing diagonal entry.
        y: The second shift component.
        w: The product of the trailing off-diagonal entries.
        ex_shift: The accumulated exceptional shift that has been subtracted
            from the diagonal and must be added back as eigenvalues deflate.
    """

    x: JAXArray
    y: JAXArray
    w: JAXArray
    ex_shift: JAXArray


class SchurResult(NamedTuple):
    """The output of :func:`schur_transform`

    Args:
        t (n, n): The quasi upper triangular Schur form.
        p (n, n): The accumulated orthogonal transform.
        info: ``0`` on success. Otherwise ``idx + 1`` where ``idx`` is the
            trailing index of the block that did not converge.
        steps: The total number of double QR steps that were performed.
    """

    t: JAXArray
    p: JAXArray
    info: JAXArray
    steps: JAXArray


class _State(NamedTuple):
    t: JAXArray
    p: JAXArray
    idx: JAXArray
    iteration: JAXArray
    shift: ShiftInfo
    info: JAXArray
    steps: JAXArray


def hessenberg_norm(t: JAXArray) -> JAXArray:
    """The entrywise L1 norm of the upper Hessenberg part of ``t``"""
    return jnp.sum(jnp.abs(jnp.triu(t, -1)))


def find_small_subdiagonal(
    t: JAXArray, idx: JAXArray, norm: JAXArray, eps: float
) -> JAXArray:
    """Find the start of the unreduced block that ends at ``idx``

    Scanning upwards from ``idx``, the block starts at the first row ``l`` whose
    subdiagonal entry ``t[l, l - 1]`` is negligible compared to the two
    neighbouring diagonal entries (or to ``norm`` when both of those vanish).
    Returns ``0`` when no such entry exists.
    """
    n = t.shape[0]
    k = jnp.arange(1, n)
    diag = jnp.abs(jnp.diagonal(t))
    s = diag[:-1] + diag[1:]
    s = jnp.where(s <= eps, norm, s)
    small = (jnp.abs(jnp.diagonal(t, -1)) < eps * s) & (k <= idx)
    return jnp.max(jnp.where(small, k, 0), initial=0)


def _shift_diagonal(t: JAXArray, idx: JAXArray, value: JAXArray) -> JAXArray:
    diag = jnp.arange(t.shape[0])
    d = jnp.diagonal(t)
    return t.at[diag, diag].set(jnp.where(diag <= idx, d - value, d))


def compute_shift(
    t: JAXArray,
    l: JAXArray,
    idx: JAXArray,
    iteration: JAXArray,
    shift: ShiftInfo,
    eps: float,
) -> tuple[JAXArray, ShiftInfo]:
    """Compute the shift for the next QR step on the block ``[l, idx]``

    The shift comes from the trailing ``2 x 2`` submatrix. On the 10th
    iteration Wilkinson's ad hoc shift is applied, and on the 30th iteration
    the exceptional shift from MATLAB. Both subtract a value from the active
    diagonal and record it in ``ex_shift``.

    Returns:
        The shifted matrix and the new shift information.
    """
    x = t[idx, idx]
    y = jnp.where(l < idx, t[idx - 1, idx - 1], 0.0)
    w = jnp.where(l < idx, t[idx, idx - 1] * t[idx - 1, idx], 0.0)
    shift = shift._replace(x=x, y=y, w=w)

    def wilkinson(args):  # type: ignore
        t, shift = args
        t = _shift_diagonal(t, idx, shift.x)
        s = jnp.abs(t[idx, idx - 1]) + jnp.abs(t[idx - 1, idx - 2])
        return t, ShiftInfo(
            x=0.75 * s,
            y=0.75 * s,
            w=-0.4375 * s * s,
            ex_shift=shift.ex_shift + shift.x,
        )

    def exceptional(args):  # type: ignore
        t, shift = args
        s = (shift.y - shift.x) / 2.0
        s = s * s + shift.w

        def apply(args):  # type: ignore
            t, shift = args
            r = jnp.sqrt(s)
            r = jnp.where(shift.y < shift.x, -r, r)
            r = shift.x - shift.w / ((shift.y - shift.x) / 2.0 + r)
            t = _shift_diagonal(t, idx, r)
            c = jnp.full_like(shift.x, 0.964)
            return t, ShiftInfo(x=c, y=c, w=c, ex_shift=shift.ex_shift + r)

        return jax.lax.cond(s > eps, apply, lambda args: args, (t, shift))

    t, shift = jax.lax.cond(
        iteration == WILKINSON_SHIFT_ITERATION,
        wilkinson,
        lambda args: args,
        (t, shift),
    )
    return jax.lax.cond(
        iteration == EXCEPTIONAL_SHIFT_ITERATION,
        exceptional,
        lambda args: args,
        (t, shift),
    )


def find_qr_start(
    t: JAXArray, l: JAXArray, idx: JAXArray, shift: ShiftInfo, eps: float
) -> tuple[JAXArray, tuple[JAXArray, JAXArray, JAXArray]]:
    """Locate where the double QR step on the block ``[l, idx]`` should start

    Looks for two consecutive small subdiagonal elements: the step can start at
    ``m > l`` if the first column of the shifted matrix product, restricted to
    rows ``m .. m+2``, makes ``t[m, m - 1]`` negligible. Otherwise it starts at
    ``l``.

    Returns:
        The start row ``m`` and the initial Householder vector ``(p, q, r)``.
        The vector is normalized by its L1 norm unless ``m == l``.
    """
    n = t.shape[0]

    def householder_vector(m):  # type: ignore
        z = t[m, m]
        r = shift.x - z
        s = shift.y - z
        p = (r * s - shift.w) / t[m + 1, m] + t[m, m + 1]
        q = t[m + 1, m + 1] - z - r - s
        r = t[m + 2, m + 1]
        return (p, q, r), jnp.abs(p) + jnp.abs(q) + jnp.abs(r)

    def converged(m):  # type: ignore
        (p, q, r), s = householder_vector(m)
        p, q, r = p / s, q / s, r / s
        z = t[m, m]
        lhs = jnp.abs(t[m, m - 1]) * (jnp.abs(q) + jnp.abs(r))
        rhs = jnp.abs(p) * (
            jnp.abs(t[m - 1, m - 1]) + jnp.abs(z) + jnp.abs(t[m + 1, m + 1])
        )
        return lhs < eps * rhs

    candidates = jnp.arange(n)
    valid = (candidates > l) & (candidates <= idx - 2)
    valid = valid & jax.vmap(converged)(candidates)
    m = jnp.max(jnp.where(valid, candidates, l))

    hvec, s = householder_vector(m)
    hvec = tuple(jnp.where(m == l, h, h / s) for h in hvec)
    return m, hvec  # type: ignore


def double_qr_step(
    t: JAXArray,
    p: JAXArray,
    l: JAXArray,
    m: JAXArray,
    idx: JAXArray,
    shift: ShiftInfo,
    hvec: tuple[JAXArray, JAXArray, JAXArray],
    eps: float,
) -> tuple[JAXArray, JAXArray, ShiftInfo]:
    """Perform one implicit double shift QR step on rows ``m .. idx``

    A ``3 x 3`` Householder reflector is chased from column ``m`` down to
    column ``idx - 1``. Each reflector is applied to the rows of ``t`` from
    column ``k`` on, to the columns of ``t`` down to row ``min(idx, k + 3)``,
    and to all rows of ``p``.

    Args:
        t (n, n): The working matrix.
        p (n, n): The accumulated orthogonal transform.
        l: The start of the unreduced block.
        m: The first column of the chase.
        idx: The last row of the unreduced block.
        shift: The current shift information.
        hvec: The initial Householder vector from :func:`find_qr_start`.
        eps: The machine epsilon of the working precision.
    """
    n = t.shape[0]
    rows = jnp.arange(n)

    def cond_fun(carry):  # type: ignore
        return carry[0] <= idx - 1

    def body_fun(carry):  # type: ignore
        k, t, p, shift = carry
        notlast = k != idx - 1
        k2 = jnp.minimum(k + 2, n - 1)

        def reload(shift):  # type: ignore
            pv = t[k, k - 1]
            qv = t[k + 1, k - 1]
            rv = jnp.where(notlast, t[k2, k - 1], 0.0)
            x = jnp.abs(pv) + jnp.abs(qv) + jnp.abs(rv)
            nonzero = jnp.abs(x) > eps
            x_safe = jnp.where(nonzero, x, 1.0)
            pv, qv, rv = (jnp.where(nonzero, v / x_safe, v) for v in (pv, qv, rv))
            return shift._replace(x=x), (pv, qv, rv), ~nonzero

        # A vanishing column below the bulge needs no reflector
        shift, (pv, qv, rv), skip = jax.lax.cond(
            k != m,
            reload,
            lambda shift: (shift, hvec, jnp.zeros((), dtype=bool)),
            shift,
        )

        s = jnp.sqrt(pv * pv + qv * qv + rv * rv)
        s = jnp.where(pv < -eps, -s, s)

        def reflect(args):  # type: ignore
            t, p, shift = args
            sub = t[k, k - 1]
            sub = jnp.where(k != m, -s * shift.x, jnp.where(l != m, -sub, sub))
            t = t.at[k, k - 1].set(sub)

            pk = pv + s
            x = pk / s
            y = qv / s
            z = rv / s
            q = qv / pk
            r = rv / pk

            # Row modification
            cols = rows >= k
            a0, a1, a2 = t[k], t[k + 1], t[k2]
            f = a0 + q * a1
            f = jnp.where(notlast, f + r * a2, f)
            t = t.at[k2].set(jnp.where(cols & notlast, a2 - f * z, a2))
            t = t.at[k].set(jnp.where(cols, a0 - f * x, a0))
            t = t.at[k + 1].set(jnp.where(cols, a1 - f * y, a1))

            # Column modification
            def update_columns(mat, mask):  # type: ignore
                c0, c1, c2 = mat[:, k], mat[:, k + 1], mat[:, k2]
                f = x * c0 + y * c1
                f = jnp.where(notlast, f + z * c2, f)
                mat = mat.at[:, k2].set(jnp.where(mask & notlast, c2 - f * r, c2))
                mat = mat.at[:, k].set(jnp.where(mask, c0 - f, c0))
                return mat.at[:, k + 1].set(jnp.where(mask, c1 - f * q, c1))

            t = update_columns(t, rows <= jnp.minimum(idx, k + 3))

            # Accumulate transformations
            p = update_columns(p, rows >= 0)
            return t, p, shift._replace(x=x, y=y)

        t, p, shift = jax.lax.cond(
            skip | (jnp.abs(s) <= eps),
            lambda args: args,
            reflect,
            (t, p, shift),
        )
        return k + 1, t, p, shift

    _, t, p, shift = jax.lax.while_loop(cond_fun, body_fun, (m, t, p, shift))

    # Clean up pollution due to round-off errors
    i = rows[:, None]
    j = rows[None, :]
    swept = (i >= m + 2) & (i <= idx)
    mask = swept & ((j == i - 2) | ((j == i - 3) & (i > m + 2)))
    return jnp.where(mask, jnp.zeros_like(t), t), p, shift


@partial(jax.jit, static_argnames=("max_iterations",))
def schur_transform(
    h: JAXArray, p: JAXArray, *, max_iterations: int = MAX_ITERATIONS
) -> SchurResult:
    """Transform a Hessenberg matrix to real Schur form

    Args:
        h (n, n): An upper Hessenberg matrix, for example from
            :func:`francis.hessenberg.hessenberg_reduce`. Integer input is
            promoted to the default floating point type.
        p (n, n): The orthogonal transform that produced ``h``. Use the
            identity if ``h`` is the matrix of interest itself.
        max_iterations: The maximum number of QR steps allowed on any single
            block before giving up.

    Returns:
        A :class:`SchurResult`. The transform is only valid if ``info`` is
        zero; otherwise ``t`` and ``p`` hold the state when the iteration
        stopped.
    """
    h = as_float_matrix(h)
    n = h.shape[0]
    p = p.astype(h.dtype)
    index_dtype = jnp.result_type(int)
    zero = jnp.zeros((), dtype=index_dtype)
    if n == 0:
        return SchurResult(t=h, p=p, info=zero, steps=zero)

    eps = float(jnp.finfo(h.dtype).eps)
    norm = hessenberg_norm(h)

    def one_root(state, l):  # type: ignore
        del l
        idx = state.idx
        t = state.t.at[idx, idx].add(state.shift.ex_shift)
        return state._replace(t=t, idx=idx - 1, iteration=zero)

    def two_roots(state, l):  # type: ignore
        del l
        t, idx, ex_shift = state.t, state.idx, state.shift.ex_shift
        w = t[idx, idx - 1] * t[idx - 1, idx]
        half = (t[idx - 1, idx - 1] - t[idx, idx]) / 2.0
        q = half * half + w
        z = jnp.sqrt(jnp.abs(q))
        t = t.at[idx, idx].add(ex_shift)
        t = t.at[idx - 1, idx - 1].add(ex_shift)

        # Real pair: rotate the block to upper triangular form
        def rotate(args):  # type: ignore
            t, p = args
            zz = jnp.where(half >= 0, half + z, half - z)
            x = t[idx, idx - 1]
            s = jnp.abs(x) + jnp.abs(zz)
            c, d = x / s, zz / s
            r = jnp.sqrt(c * c + d * d)
            c, d = c / r, d / r

            a0, a1 = t[idx - 1], t[idx]
            cols = rows >= idx - 1
            t = t.at[idx - 1].set(jnp.where(cols, d * a0 + c * a1, a0))
            t = t.at[idx].set(jnp.where(cols, d * a1 - c * a0, a1))

            def rotate_columns(mat, mask):  # type: ignore
                b0, b1 = mat[:, idx - 1], mat[:, idx]
                mat = mat.at[:, idx - 1].set(jnp.where(mask, d * b0 + c * b1, b0))
                return mat.at[:, idx].set(jnp.where(mask, d * b1 - c * b0, b1))

            return rotate_columns(t, rows <= idx), rotate_columns(p, rows >= 0)

        t, p = jax.lax.cond(q >= 0, rotate, lambda args: args, (t, state.p))
        return state._replace(t=t, p=p, idx=idx - 2, iteration=zero)

    def iterate(state, l):  # type: ignore
        idx = state.idx
        t, shift = compute_shift(state.t, l, idx, state.iteration, state.shift, eps)
        iteration = state.iteration + 1
        failed = iteration > max_iterations

        def step(args):  # type: ignore
            t, p, shift = args
            m, hvec = find_qr_start(t, l, idx, shift, eps)
            return double_qr_step(t, p, l, m, idx, shift, hvec, eps)

        t, p, shift = jax.lax.cond(
            failed, lambda args: args, step, (t, state.p, shift)
        )
        return state._replace(
            t=t,
            p=p,
            shift=shift,
            iteration=iteration,
            info=jnp.where(failed, idx + 1, state.info),
            steps=jnp.where(failed, state.steps, state.steps + 1),
        )

    def cond_fun(state):  # type: ignore
        return (state.idx >= 0) & (state.info == 0)

    def body_fun(state):  # type: ignore
        l = find_small_subdiagonal(state.t, state.idx, norm, eps)
        branch = jnp.where(l == state.idx, 0, jnp.where(l == state.idx - 1, 1, 2))
        return jax.lax.switch(branch, (one_root, two_roots, iterate), state, l)

    rows = jnp.arange(n)
    scalar = jnp.zeros((), dtype=h.dtype)
    init = _State(
        t=h,
        p=p,
        idx=jnp.asarray(n - 1, dtype=index_dtype),
        iteration=zero,
        shift=ShiftInfo(x=scalar, y=scalar, w=scalar, ex_shift=scalar),
        info=zero,
        steps=zero,
    )
    state = jax.lax.while_loop(cond_fun, body_fun, init)
    return SchurResult(t=state.t, p=state.p, info=state.info, steps=state.steps)


class SchurTransformer(eqx.Module):
    """The real Schur decomposition of a general real square matrix

    The decomposition is ``A = P @ T @ P.T`` where ``P`` is orthogonal and
    ``T`` is quasi upper triangular. Real eigenvalues of ``A`` appear on the
    diagonal of ``T`` and complex conjugate pairs as ``2 x 2`` diagonal
    blocks.

    Args:
        matrix: The square matrix to transform, or a
            :class:`francis.hessenberg.HessenbergTransformer` holding the
            Hessenberg form of the matrix.
        max_iterations: The maximum number of QR steps allowed on any single
            block before giving up.
        check: If ``True`` (the default), raise a :class:`ConvergenceError`
            when the iteration fails. This requires concrete values, so pass
            ``check=False`` inside ``jax.jit`` and inspect :attr:`info`
            instead.

    Raises:
        NonSquareMatrixError: If ``matrix`` is not square. This is checked
            before any iteration takes place.
        ConvergenceError: If ``check`` is ``True`` and some block does not
            converge within ``max_iterations`` QR steps.
    """

    t_value: JAXArray
    p_value: JAXArray
    info: JAXArray
    steps: JAXArray
    max_iterations: int = eqx.field(static=True)

    def __init__(
        self,
        matrix: Any,
        *,
        max_iterations: int = MAX_ITERATIONS,
        check: bool = True,
    ):
        if isinstance(matrix, HessenbergTransformer):
            h, p = matrix.h(), matrix.p()
        else:
            check_square(matrix)
            h, p = hessenberg_reduce(as_float_matrix(matrix))

        result = schur_transform(h, p, max_iterations=max_iterations)
        self.t_value = result.t
        self.p_value = result.p
        self.info = result.info
        self.steps = result.steps
        self.max_iterations = max_iterations

        if check:
            n = h.shape[0]
            info = int(result.info)
            if info:
                logger.debug(
                    "QR iteration on a %d x %d matrix stalled at index %d",
                    n,
                    n,
                    info - 1,
                )
                raise ConvergenceError(max_iterations, info - 1)
            logger.debug(
                "Reduced a %d x %d matrix to Schur form in %d QR steps",
                n,
                n,
                int(result.steps),
            )

    def t(self) -> JAXArray:
        """The quasi upper triangular Schur form"""
        return self.t_value

    def p(self) -> JAXArray:
        """The orthogonal transform

        ``P`` is orthogonal, so its inverse is its transpose.
        """
        return self.p_value

    def pt(self) -> JAXArray:
        """The transpose of the orthogonal transform"""
        return self.p_value.transpose()


def real_schur(
    a: Any, *, max_iterations: int = MAX_ITERATIONS
) -> tuple[JAXArray, JAXArray]:
    """Compute the real Schur decomposition ``a = P @ T @ P.T``

    Args:
        a (n, n): A general real square matrix.
        max_iterations: The maximum number of QR steps allowed on any single
            block before giving up.

    Returns:
        The tuple ``(T, P)``.
    """
    transformer = SchurTransformer(a, max_iterations=max_iterations)
    return transformer.t(), transformer.p()
