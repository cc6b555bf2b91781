from .active_set import ActiveSet, getact
from .geometry import geometry_step
from .optim import constrained_cg_step

__all__ = ['ActiveSet', 'getact', 'geometry_step', 'constrained_cg_step']
