"""
Total variation regularizer.

For pixel (r, c) the residual is

    tv_{r,c} = sqrt((x_{r+1,c} - x_{r,c})^2 + (x_{r,c+1} - x_{r,c})^2)

with a zero difference wherever the neighbor below / to the right is outside
the image. The root is evaluated with hypot, so large finite differences do not
overflow. The formula is written once, over torch tensors, and evaluated either
on plain tensors (values only) or on forward-mode dual tensors (values and
derivatives).

Every residual depends on three pixels: itself (center), its right neighbor and
the pixel below. Derivatives are therefore computed per stencil role, then
scattered back: pixel (r, c) collects the center partial of its own term, the
right partial of the term at (r, c-1) and the below partial of the term at
(r-1, c).
"""
from typing import Optional, Sequence, Tuple

import numpy as np
import torch
import torch.autograd.forward_ad as fwAD

from ..errors import NonFiniteValueError
from .regularizer import Regularizer

# Minimum total variation used in derivative denominators so we never divide by zero.
MIN_TOTAL_VARIATION = 1e-6


class _FlooredHypot(torch.autograd.Function):
    """
    hypot(x, y) whose value is exact but whose derivatives divide by
    max(hypot(x, y), MIN_TOTAL_VARIATION). hypot never squares its inputs, so
    every finite pair gives a finite result.
    """

    @staticmethod
    def forward(ctx, x_variation, y_variation):
        variation = torch.hypot(x_variation, y_variation)
        ctx.save_for_backward(x_variation, y_variation, variation)
        ctx.save_for_forward(x_variation, y_variation, variation)
        return variation

    @staticmethod
    def backward(ctx, grad_output):
        x_variation, y_variation, variation = ctx.saved_tensors
        variation_nz = torch.clamp(variation, min=MIN_TOTAL_VARIATION)
        return grad_output * x_variation / variation_nz, grad_output * y_variation / variation_nz

    @staticmethod
    def jvp(ctx, x_variation_tangent, y_variation_tangent):
        x_variation, y_variation, variation = ctx.saved_tensors
        variation_nz = torch.clamp(variation, min=MIN_TOTAL_VARIATION)
        return (x_variation * x_variation_tangent + y_variation * y_variation_tangent) / variation_nz


def _stencil(image: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    Returns (center, right, below) neighbor images. Out-of-image neighbors repeat
    the border pixel, which makes their difference exactly 0.
    """
    right = torch.cat([image[:, 1:], image[:, -1:]], dim=1)
    below = torch.cat([image[1:, :], image[-1:, :]], dim=0)
    return image, right, below


def _total_variation(center: torch.Tensor, right: torch.Tensor, below: torch.Tensor) -> torch.Tensor:
    x_variation = right - center
    y_variation = below - center
    return _FlooredHypot.apply(x_variation, y_variation)


def _accumulate_partials(
        center_partials: torch.Tensor,
        right_partials: torch.Tensor,
        below_partials: torch.Tensor,
        partial_const_terms: torch.Tensor) -> torch.Tensor:
    derivatives = partial_const_terms * center_partials
    # term (r, c-1) depends on x_{r,c} as its right neighbor
    derivatives[:, 1:] += (partial_const_terms * right_partials)[:, :-1]
    # term (r-1, c) depends on x_{r,c} as the pixel below
    derivatives[1:, :] += (partial_const_terms * below_partials)[:-1, :]
    return derivatives


class TotalVariationRegularizer(Regularizer):
    """
    Isotropic total variation with forward differences.

    `get_derivatives` uses the closed-form partials; `apply_to_image_with_differentiation`
    obtains the same partials by forward-mode automatic differentiation. Both divide
    by the floored variation and agree to floating-point tolerance.

    Derivatives are the true gradient of sum_i u_i * rho_i(x) for upstream terms u,
    sign included, so they can be handed to a minimizer as they are.
    """

    def _to_tensor(self, image_data: np.ndarray) -> torch.Tensor:
        image_data = self._check_image_data(image_data)
        return torch.from_numpy(image_data.reshape(self.image_shape).copy())

    def apply_to_image(self, image_data: np.ndarray) -> np.ndarray:
        image = self._to_tensor(image_data)
        with torch.no_grad():
            residuals = _total_variation(*_stencil(image))
        return residuals.reshape(-1).numpy()

    def get_derivatives(self, image_data: np.ndarray, partial_const_terms: Sequence[float]) -> np.ndarray:
        partial_const_terms = self._check_partial_const_terms(partial_const_terms)
        center, right, below = _stencil(self._to_tensor(image_data))

        x_variation = right - center
        y_variation = below - center
        total_variation = torch.hypot(x_variation, y_variation)
        total_variation_nz = torch.clamp(total_variation, min=MIN_TOTAL_VARIATION)

        derivatives = _accumulate_partials(
            -(x_variation + y_variation) / total_variation_nz,
            x_variation / total_variation_nz,
            y_variation / total_variation_nz,
            torch.from_numpy(partial_const_terms.reshape(self.image_shape)),
        )
        return self._checked_result(derivatives)

    def apply_to_image_with_differentiation(
            self, image_data: np.ndarray,
            partial_const_terms: Optional[Sequence[float]] = None) -> Tuple[np.ndarray, np.ndarray]:
        partial_const_terms = self._check_partial_const_terms(partial_const_terms)
        stencil = _stencil(self._to_tensor(image_data))

        residuals = None
        role_partials = []
        for role in range(len(stencil)):
            with fwAD.dual_level():
                inputs = list(stencil)
                inputs[role] = fwAD.make_dual(inputs[role], torch.ones_like(inputs[role]))
                primal, tangent = fwAD.unpack_dual(_total_variation(*inputs))
                residuals = primal.clone()
                role_partials.append(tangent.clone())

        derivatives = _accumulate_partials(
            *role_partials, torch.from_numpy(partial_const_terms.reshape(self.image_shape)))
        return residuals.reshape(-1).numpy(), self._checked_result(derivatives)

    @staticmethod
    def _checked_result(derivatives: torch.Tensor) -> np.ndarray:
        derivatives = derivatives.reshape(-1).numpy()
        if not np.all(np.isfinite(derivatives)):
            raise NonFiniteValueError("Total variation derivatives contain NaN or Inf values.")
        return derivatives
