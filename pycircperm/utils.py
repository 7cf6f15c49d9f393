from typing import Union

import numpy as np


class LowResolutionWarning(UserWarning):
    """Permutation count too small to resolve the usual significance levels."""


class SmallSampleWarning(RuntimeWarning):
    """A large-sample approximation is applied to a small group."""


class PopulationFailedWarning(RuntimeWarning):
    """One population could not be analysed; the others were completed."""


def data2rad(
    data: Union[np.ndarray, float, int],
    k: Union[float, int] = 360,  # number of intervals in the full cycle
) -> Union[np.ndarray, float]:  # eq(26.1), zar 2010
    r"""Convert data measured on a circular scale to
    corresponding angular directions.

    $$ \alpha = \frac{2\pi \times \mathrm{data}}{k} $$

    Parameters
    ----------
    data : np.ndarray or float
        Data measured on a circular scale.
    k : float or int
        Number of intervals in the full cycle. Default is 360.

    Returns
    -------
    angle: np.ndarray or float
        Angular directions in radian.
    """
    return 2 * np.pi * data / k


def rad2data(
    rad: Union[np.ndarray, float, int], k: Union[float, int] = 360
) -> Union[np.ndarray, float]:
    return k * rad / (2 * np.pi)  # eq(26.12), zar 2010


def angmod(
    rad: Union[np.ndarray, float, int], bounds: list = [0, 2 * np.pi]
) -> Union[np.ndarray, float]:
    """
    Normalize angles to a specified range.

    Parameters:
    -----------
    rad : Union[np.ndarray, float, int]
        An angle or array of angles.
    bounds : list, optional
        A list or tuple of two values [min, max] defining the target range. Default is [0, 2π).

    Returns:
    --------
    Union[np.ndarray, float]
        The normalized angle(s), constrained to the specified range.
    """
    if len(bounds) != 2 or bounds[0] >= bounds[1]:
        raise ValueError(
            "bounds must be a list or tuple with two values [min, max] where min < max."
        )

    bound_min, bound_max = bounds
    bound_span = bound_max - bound_min
    result = ((rad - bound_min) % bound_span + bound_span) % bound_span + bound_min

    # Adjust values equal to bound_max to bound_min for consistency
    if isinstance(result, np.ndarray):
        result[result == bound_max] = bound_min
    elif result == bound_max:
        result = bound_min

    return result


def mirror_hemisphere(angles_deg: Union[np.ndarray, list, float]) -> np.ndarray:
    r"""Fold left-hemisphere directions onto the right hemisphere.

    Sections of unknown left-right orientation are made comparable by
    mirroring every angle in the left half-plane about the vertical axis:

    $$ \theta' = 180° - \theta, \quad 90° \le \theta \le 270° $$

    Angles in the right half-plane are unchanged. Inputs may be in
    $(-180°, 180°]$ or $[0°, 360°)$; the output is wrapped to $[0°, 360°)$.

    Parameters
    ----------
    angles_deg : array-like
        Angles in degrees, 0° pointing right and 90° dorsal.

    Returns
    -------
    np.ndarray
        Mirrored angles in degrees within [0, 360).
    """
    theta = angmod(np.array(angles_deg, dtype=float, ndmin=1), bounds=[0, 360])
    left = (theta >= 90) & (theta <= 270)
    theta[left] = 180 - theta[left]
    return angmod(theta, bounds=[0, 360])


def significance_code(p: float) -> str:
    if p is None or np.isnan(p):
        sig = ""
    elif p < 0.001:
        sig = "***"
    elif p < 0.01:
        sig = "**"
    elif p < 0.05:
        sig = "*"
    elif p < 0.1:
        sig = "."
    else:
        sig = ""
    return sig


def format_pval(p: float, bound: bool = False, digits: int = 4) -> str:
    """Render a p-value, showing Monte-Carlo lower-resolution bounds as `< x`."""
    if p is None or np.isnan(p):
        return "n/a"
    if bound:
        return f"< {p:.{digits}g}"
    return f"{p:.{digits}f}"
