"""
Shared result types for the manifold state inversions.

Goal:
- Every inversion (PT, Prho, rhoT, hs, Ps) reports the same structure.
- Non-convergence is reported, never hidden; raising is opt-in (strict mode).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(slots=True)
class InversionDiagnostics:
    converged: bool
    method: str
    n_iter: int
    density: float
    energy: float
    residuals: Tuple[float, ...] = ()
    tolerances: Tuple[float, ...] = ()
    message: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class InversionConvergenceError(RuntimeError):
    """Raised in strict mode when an inversion exhausts its iteration cap."""

    def __init__(self, diag: InversionDiagnostics):
        self.diag = diag
        super().__init__(
            diag.message
            or f"{diag.method} inversion did not converge in {diag.n_iter} iterations "
            f"(residuals={diag.residuals}, tolerances={diag.tolerances})"
        )
