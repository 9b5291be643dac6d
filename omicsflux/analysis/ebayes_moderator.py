import numpy as np
from scipy.stats import t as t_dist

from omicsflux.analysis.ebayes_prior import fit_fdist
from omicsflux.analysis.stats_ops import bh_adjust
from omicsflux.utils.utils import log_info, log_time, log_warning


class EbayesModerator:
    def __init__(self, sigma2, df_residual):
        """
        Parameters:
        - sigma2: (n_features,) vector of residual variances (NaN for unfitted rows)
        - df_residual: scalar or array of degrees of freedom (per feature; 0 for exact fits)
        """
        self.sigma2 = np.asarray(sigma2, dtype=float)
        df = np.asarray(df_residual, dtype=float)
        self.df_residual = np.full_like(self.sigma2, df) if df.ndim == 0 else df
        self.d0 = None
        self.s0 = None
        self.df_total = None

    def fit(self):
        """Estimate prior degrees of freedom d0 and prior variance s0 from all rows."""
        s0, d0 = fit_fdist(self.sigma2, self.df_residual)
        self.s0 = s0
        self.d0 = d0
        if np.isnan(s0):
            log_warning("No usable residual variance; variances are not moderated.")
        else:
            log_info(f"Prior: d0={d0:.3g}, s0={s0:.3g}")
        return d0, s0

    def moderate(self):
        """
        Returns:
        - moderated variances (s0 for rows fitted with zero residual df)
        - total degrees of freedom (d + d0, capped at the pooled residual df)
        """
        if self.s0 is None:
            self.fit()

        d = self.df_residual
        s2 = self.sigma2
        prior_only = d == 0

        # shrink variances
        if np.isnan(self.s0):
            s2_moderated = s2.copy()
            df_total = d.copy()
        else:
            if np.isinf(self.d0):
                s2_moderated = np.where(np.isfinite(s2) | prior_only, self.s0, np.nan)
            else:
                with np.errstate(invalid="ignore", divide="ignore"):
                    s2_moderated = (self.d0 * self.s0 + d * s2) / (self.d0 + d)
                s2_moderated = np.where(prior_only, self.s0, s2_moderated)
            df_pooled = np.sum(d[np.isfinite(s2)])
            df_total = np.minimum(d + self.d0, df_pooled)

        self.df_total = df_total
        return s2_moderated, df_total

    @log_time("EBayes Computation")
    def apply_to_contrasts(self, estimates, unscaled_variances):
        """
        Recalculate t, p, q using moderated variances

        Parameters:
        - estimates: (n_features x n_contrasts)
        - unscaled_variances: (n_features x n_contrasts), v = c' (X'X)^-1 c per row

        Returns:
        - dict: s2_post, df_total, t, p, q (t/p/q of shape n_features x n_contrasts)
        """
        s2_moderated, df_total = self.moderate()
        se = np.sqrt(s2_moderated[:, None] * unscaled_variances)

        with np.errstate(divide="ignore", invalid="ignore"):
            t_stat = estimates / se
            p_val = 2 * t_dist.sf(np.abs(t_stat), df=df_total[:, None])

        return {
            "s2_post": s2_moderated,
            "df_total": df_total,
            "t_ebayes": t_stat,
            "p_ebayes": p_val,
            "q_ebayes": bh_adjust(p_val),
        }
