"""
shapemodels - statistical shape models from meshes in correspondence.

Builds and validates linear statistical shape models from collections of
3D surface meshes that are in dense point correspondence with a reference:
Generalized Procrustes Analysis of deformation fields, PCA models, low-rank
Gaussian process models, model augmentation, and cross-validated model
quality metrics.

Example usage:
    >>> import numpy as np
    >>> import shapemodels as sm
    >>>
    >>> # Load meshes in correspondence with a reference
    >>> reference = sm.read_mesh("reference.ply")
    >>> collection, failures = sm.DataCollection.from_mesh_directory(reference, "meshes/")
    >>>
    >>> # Remove pose differences and build a PCA model
    >>> aligned = sm.generalized_procrustes(collection).collection
    >>> model = sm.pca(aligned)
    >>>
    >>> # Add a smooth Gaussian process bias
    >>> kernel = sm.GaussianKernel(sigma=25.0) * 20.0
    >>> bias = sm.approximate_gp(kernel, model.reference, n_samples=500,
    ...                          rank=model.rank + 5, rng=np.random.default_rng(42))
    >>> augmented = sm.augment_model(model, bias)
    >>>
    >>> # Leave-one-out generalization
    >>> scores = sm.cross_validation(aligned, bias=bias)
"""

from shapemodels.crossvalidation import cross_validation
from shapemodels.data import (
    DataCollection,
    DataItem,
    DeformationField,
    Fold,
    ItemFailure,
)
from shapemodels.errors import (
    DomainMismatchError,
    InsufficientDataError,
    ShapeModelError,
)
from shapemodels.gp import LowRankGP, approximate_gp
from shapemodels.gpa import (
    GPAResult,
    GPAState,
    center,
    centroid_size,
    generalized_procrustes,
    gpa_step,
    procrustes_distance,
)
from shapemodels.io import (
    get_filenames,
    load_meshes,
    mesh_files,
    read_landmarks,
    read_mesh,
    write_landmarks,
    write_mesh,
)
from shapemodels.kernels import (
    DiagonalKernel,
    GaussianKernel,
    Kernel,
    MatrixValuedKernel,
    ScaledKernel,
    SumKernel,
)
from shapemodels.mesh import (
    RigidTransform,
    Transformable,
    TriangleMesh,
    sample_surface_points,
)
from shapemodels.metrics import (
    avg_distance,
    compactness,
    generalization,
    hausdorff_distance,
    specificity,
)
from shapemodels.model import LowRankModel, augment_model
from shapemodels.pca import pca, project_to_pc_space, warp_along_pc
from shapemodels.registration import align_meshes, rigid_landmark_registration

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Meshes and transforms
    "TriangleMesh",
    "RigidTransform",
    "Transformable",
    "sample_surface_points",
    "rigid_landmark_registration",
    "align_meshes",
    # Data collections
    "DeformationField",
    "DataItem",
    "DataCollection",
    "Fold",
    "ItemFailure",
    # GPA functions
    "GPAResult",
    "GPAState",
    "generalized_procrustes",
    "gpa_step",
    "center",
    "centroid_size",
    "procrustes_distance",
    # Models
    "LowRankModel",
    "augment_model",
    "pca",
    "warp_along_pc",
    "project_to_pc_space",
    # Gaussian processes
    "Kernel",
    "GaussianKernel",
    "ScaledKernel",
    "SumKernel",
    "MatrixValuedKernel",
    "DiagonalKernel",
    "LowRankGP",
    "approximate_gp",
    # Metrics and validation
    "generalization",
    "specificity",
    "compactness",
    "avg_distance",
    "hausdorff_distance",
    "cross_validation",
    # Errors
    "ShapeModelError",
    "DomainMismatchError",
    "InsufficientDataError",
    # I/O functions
    "read_mesh",
    "write_mesh",
    "load_meshes",
    "get_filenames",
    "mesh_files",
    "read_landmarks",
    "write_landmarks",
]
