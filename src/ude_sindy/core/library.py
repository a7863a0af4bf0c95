"""
Candidate function libraries for sparse regression.

A library is an ordered, immutable tuple of basis terms. Each term is one of
two tagged variants:

- ``Monomial``: product of state coordinates raised to an exponent tuple.
- ``Transcendental``: a named scalar function applied to one coordinate.

Terms are evaluated through an explicit dispatch table keyed by variant type,
so numpy arrays and torch tensors share one code path. Term order defines the
column order of every design matrix and the row order of every coefficient
matrix built from the library.
"""

from dataclasses import dataclass
from itertools import combinations_with_replacement
from typing import Callable, Dict, List, Sequence, Tuple, Union

import numpy as np
import torch

Array = Union[np.ndarray, torch.Tensor]

VAR_NAMES = ["x", "y", "z", "w", "v", "u"]

# (numpy implementation, torch implementation)
TRANSCENDENTAL_FUNCTIONS: Dict[str, Tuple[Callable, Callable]] = {
    "sin": (np.sin, torch.sin),
    "cos": (np.cos, torch.cos),
    "exp": (np.exp, torch.exp),
}


def _var_names(n_vars: int) -> List[str]:
    if n_vars > len(VAR_NAMES):
        return [f"x{i}" for i in range(n_vars)]
    return VAR_NAMES[:n_vars]


@dataclass(frozen=True)
class Monomial:
    """Monomial term, e.g. exponents (1, 2) is x*y^2."""

    exponents: Tuple[int, ...]

    @property
    def degree(self) -> int:
        return sum(self.exponents)

    def name(self, var_names: Sequence[str]) -> str:
        if self.degree == 0:
            return "1"
        return "".join(var * power for var, power in zip(var_names, self.exponents))


@dataclass(frozen=True)
class Transcendental:
    """Scalar function of a single coordinate, e.g. sin(x)."""

    func: str
    index: int

    def __post_init__(self):
        if self.func not in TRANSCENDENTAL_FUNCTIONS:
            raise ValueError(
                f"Unknown function '{self.func}'. "
                f"Choose from {sorted(TRANSCENDENTAL_FUNCTIONS)}"
            )

    def name(self, var_names: Sequence[str]) -> str:
        return f"{self.func}({var_names[self.index]})"


Term = Union[Monomial, Transcendental]


def _ones_like_column(X: Array) -> Array:
    if isinstance(X, torch.Tensor):
        return torch.ones_like(X[..., 0])
    return np.ones_like(X[..., 0])


def _evaluate_monomial(term: Monomial, X: Array) -> Array:
    column = _ones_like_column(X)
    for i, power in enumerate(term.exponents):
        if power > 0:
            column = column * X[..., i] ** power
    return column


def _evaluate_transcendental(term: Transcendental, X: Array) -> Array:
    numpy_fn, torch_fn = TRANSCENDENTAL_FUNCTIONS[term.func]
    fn = torch_fn if isinstance(X, torch.Tensor) else numpy_fn
    return fn(X[..., term.index])


_EVALUATORS: Dict[type, Callable[[Term, Array], Array]] = {
    Monomial: _evaluate_monomial,
    Transcendental: _evaluate_transcendental,
}


def evaluate_term(term: Term, X: Array) -> Array:
    """Evaluate a single basis term on samples ``X`` with shape [..., n_vars]."""
    return _EVALUATORS[type(term)](term, X)


def monomial_exponents(n_vars: int, poly_order: int) -> List[Tuple[int, ...]]:
    """
    Exponent tuples of all monomials up to ``poly_order``, graded by degree.

    Examples
    --------
    >>> monomial_exponents(2, 2)
    [(0, 0), (1, 0), (0, 1), (2, 0), (1, 1), (0, 2)]
    """
    exponents = []
    for order in range(poly_order + 1):
        for combo in combinations_with_replacement(range(n_vars), order):
            powers = [0] * n_vars
            for var_idx in combo:
                powers[var_idx] += 1
            exponents.append(tuple(powers))
    return exponents


class CandidateLibrary:
    """
    Ordered candidate basis over the state vector.

    Parameters
    ----------
    n_vars : int, optional
        State dimension (default: 2).
    poly_order : int, optional
        Maximum total degree of the monomials (default: 5).
    transcendental : Sequence[str], optional
        Functions applied to every coordinate after the monomials
        (default: ("sin",)).
    var_names : Sequence[str], optional
        Variable names used in term names (default: x, y, z, ...).

    Examples
    --------
    >>> library = CandidateLibrary(poly_order=2, transcendental=("sin",))
    >>> library.names
    ['1', 'x', 'y', 'xx', 'xy', 'yy', 'sin(x)', 'sin(y)']
    """

    def __init__(
        self,
        n_vars: int = 2,
        poly_order: int = 5,
        transcendental: Sequence[str] = ("sin",),
        var_names: Sequence[str] = None,
    ):
        if n_vars < 1:
            raise ValueError("n_vars must be at least 1")
        self.n_vars = n_vars
        self.poly_order = poly_order
        self.var_names = tuple(var_names) if var_names is not None else tuple(_var_names(n_vars))
        if len(self.var_names) != n_vars:
            raise ValueError(f"Expected {n_vars} variable names, got {len(self.var_names)}")

        terms: List[Term] = [Monomial(e) for e in monomial_exponents(n_vars, poly_order)]
        for func in transcendental:
            terms.extend(Transcendental(func, i) for i in range(n_vars))
        self._terms: Tuple[Term, ...] = tuple(terms)
        self._names: Tuple[str, ...] = tuple(t.name(self.var_names) for t in self._terms)

    @property
    def terms(self) -> Tuple[Term, ...]:
        return self._terms

    @property
    def names(self) -> List[str]:
        return list(self._names)

    def __len__(self) -> int:
        return len(self._terms)

    def __iter__(self):
        return iter(self._terms)

    def __repr__(self) -> str:
        return f"CandidateLibrary(n_vars={self.n_vars}, n_terms={len(self)}, terms={self.names})"

    def index(self, name: str) -> int:
        """Column index of the term called ``name``."""
        return self._names.index(name)

    def evaluate(self, X: Array) -> Array:
        """
        Build the design matrix.

        Parameters
        ----------
        X : np.ndarray or torch.Tensor
            Samples with shape [n_samples, n_vars] (or a single state [n_vars]).

        Returns
        -------
        Theta : np.ndarray or torch.Tensor
            Design matrix with shape [n_samples, n_terms] (or [n_terms]).
        """
        if X.shape[-1] != self.n_vars:
            raise ValueError(f"Expected states with {self.n_vars} coordinates, got shape {tuple(X.shape)}")
        columns = [evaluate_term(term, X) for term in self._terms]
        if isinstance(X, torch.Tensor):
            return torch.stack(columns, dim=-1)
        return np.stack(columns, axis=-1)


def build_library_2d(
    x: np.ndarray, poly_order: int = 3, transcendental: Sequence[str] = ()
) -> Tuple[np.ndarray, List[str]]:
    """
    Build a design matrix for a 2D system.

    Parameters
    ----------
    x : np.ndarray
        State trajectory with shape [n_samples, 2].
    poly_order : int, optional
        Maximum polynomial order (default: 3).
    transcendental : Sequence[str], optional
        Extra functions applied per coordinate (default: none).

    Returns
    -------
    Theta : np.ndarray
        Design matrix [n_samples, n_terms].
    term_names : List[str]
        Term names in column order.
    """
    library = CandidateLibrary(2, poly_order, transcendental)
    return library.evaluate(np.asarray(x)), library.names
