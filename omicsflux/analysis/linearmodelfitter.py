import numpy as np
from typing import List

from omicsflux.utils.errors import FitError
from omicsflux.utils.utils import log_time, log_warning


class LinearModelFitter:
    def __init__(self, expression: np.ndarray, design_matrix: np.ndarray):
        """
        Parameters:
        - expression: (n_samples x n_features) matrix (adata.X or a layer), NaN = missing
        - design_matrix: (n_samples x n_covariates) matrix from DesignMatrixBuilder
        """
        self.Y = np.asarray(expression, dtype=float)
        self.X = np.asarray(design_matrix, dtype=float)
        if self.Y.shape[0] != self.X.shape[0]:
            raise ValueError(
                f"Expression has {self.Y.shape[0]} samples, design matrix has {self.X.shape[0]} rows"
            )
        n_features = self.Y.shape[1]
        p = self.X.shape[1]

        self.coefficients = np.full((n_features, p), np.nan)
        self.residual_variance = np.full(n_features, np.nan)
        self.df_residual = np.full(n_features, np.nan)
        self.xtx_inv = np.full((n_features, p, p), np.nan)  # per-row (X^T X)^(-1)
        self.fitted = np.zeros(n_features, dtype=bool)
        self.errors: List[FitError] = []

    @staticmethod
    def _check_design(X: np.ndarray, row) -> int:
        """Residual df of the observed design (may be 0); FitError if the row cannot be fitted."""
        n, p = X.shape
        if n < p:
            raise FitError(row, f"{n} observed value(s) for {p} coefficients")
        rank = np.linalg.matrix_rank(X)
        if rank < p:
            raise FitError(row, f"observed design is rank-deficient (rank {rank} < {p})")
        return n - p

    def _store(self, rows, X, Y, df):
        """OLS on a shared design for the columns `rows` of Y (n_obs x len(rows))."""
        xtx_inv = np.linalg.inv(X.T @ X)
        betas = xtx_inv @ X.T @ Y         # (p x k)
        resid = Y - X @ betas
        rss = np.sum(resid**2, axis=0)

        self.coefficients[rows] = betas.T
        # df == 0: exact fit, variance left to the prior
        self.residual_variance[rows] = rss / df if df > 0 else np.nan
        self.df_residual[rows] = df
        self.xtx_inv[rows] = xtx_inv
        self.fitted[rows] = True

    @log_time("Linear Regressions")
    def fit(self):
        """
        Fits OLS per feature.

        Complete features share one design and are solved together; features
        with missing values are fitted on their observed samples only.
        Features that cannot be fitted are recorded in `errors`.
        """
        X, Y = self.X, self.Y
        observed = np.isfinite(Y)
        complete = observed.all(axis=0)

        if complete.any():
            rows = np.flatnonzero(complete)
            try:
                df = self._check_design(X, None)
            except FitError as e:
                self.errors.extend(FitError(int(r), e.reason) for r in rows)
            else:
                self._store(rows, X, Y[:, rows], df)

        for r in np.flatnonzero(~complete):
            mask = observed[:, r]
            try:
                df = self._check_design(X[mask], int(r))
            except FitError as e:
                self.errors.append(e)
                continue
            self._store([r], X[mask], Y[mask, r][:, None], df)

        self.errors.sort(key=lambda e: e.row)
        if self.errors:
            log_warning(f"{len(self.errors)} feature(s) could not be fitted and are excluded.")

        return self

    def get_results(self) -> dict:
        """
        Returns a dictionary of results.
        """
        return {
            "coefficients": self.coefficients,
            "residual_variance": self.residual_variance,
            "df_residual": self.df_residual,
            "xtx_inv": self.xtx_inv,
            "fitted": self.fitted,
            "errors": list(self.errors),
        }
