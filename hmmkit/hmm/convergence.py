"""
Stopping rule for iterative estimation loops.
"""

import math


def check_convergence(old_likelihood: float,
                      new_likelihood: float,
                      current_iteration: int,
                      max_iterations: int,
                      tolerance: float) -> bool:
    """
    Decide whether an estimation loop should stop.

    With a positive tolerance the loop stops once the likelihood change is
    within tolerance, or once a positive iteration cap is reached. With a
    non-positive tolerance only the iteration cap applies, and it must be
    hit exactly. A NaN or infinite new likelihood always stops the loop.

    Args:
        old_likelihood: Likelihood of the previous iteration
        new_likelihood: Likelihood of the current iteration
        current_iteration: 1-based index of the current iteration
        max_iterations: Iteration cap (<= 0 means no cap when tolerance > 0)
        tolerance: Absolute likelihood-change threshold

    Returns:
        True if the loop should stop
    """
    if tolerance > 0:
        if abs(old_likelihood - new_likelihood) <= tolerance:
            return True

        if max_iterations > 0 and current_iteration >= max_iterations:
            return True

    elif current_iteration == max_iterations:
        return True

    return math.isnan(new_likelihood) or math.isinf(new_likelihood)
