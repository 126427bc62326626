"""
I/O functions for meshes and landmark files.

Meshes are read and written with trimesh. Vertex order is preserved on
reading, which point correspondence between meshes relies on. Formats that
do not store shared vertices (STL) break correspondence and should only be
used for display.

Landmarks are read from and written to the two formats used by 3D Slicer:
- FCSV format (.fcsv) - 3D Slicer fiducial CSV format
- Markup JSON format (.mrk.json) - 3D Slicer 5.x markup format
"""

from __future__ import annotations

import glob as glob_module
import json
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
import trimesh

from shapemodels.mesh import TriangleMesh

if TYPE_CHECKING:
    from numpy.typing import NDArray

MESH_SUFFIXES = (".ply", ".obj", ".off", ".stl")


def read_mesh(filepath: str | Path) -> TriangleMesh:
    """Read a triangle mesh from a file.

    Args:
        filepath: Path to a mesh file (.ply, .obj, .off or .stl)

    Returns:
        Mesh with vertices in file order

    Raises:
        ValueError: If the file format is not supported or the file does
            not hold a single triangle mesh
        FileNotFoundError: If file does not exist
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    suffix = filepath.suffix.lower()
    if suffix not in MESH_SUFFIXES:
        raise ValueError(
            f"Unsupported file format: {suffix}. "
            f"Supported formats: {', '.join(MESH_SUFFIXES)}"
        )

    try:
        loaded = trimesh.load_mesh(str(filepath), process=False)
    except Exception as e:
        raise ValueError(f"Could not parse mesh file {filepath}: {e}") from e
    if not isinstance(loaded, trimesh.Trimesh) or len(loaded.faces) == 0:
        raise ValueError(f"No triangle mesh found in {filepath}")

    return TriangleMesh(np.asarray(loaded.vertices), np.asarray(loaded.faces))


def write_mesh(mesh: TriangleMesh, filepath: str | Path) -> None:
    """Write a triangle mesh to a file.

    Args:
        mesh: Mesh to write
        filepath: Output file path (.ply, .obj, .off or .stl)

    Raises:
        ValueError: If file format is not supported
    """
    filepath = Path(filepath)
    suffix = filepath.suffix.lower()
    if suffix not in MESH_SUFFIXES:
        raise ValueError(
            f"Unsupported file format: {suffix}. "
            f"Supported formats: {', '.join(MESH_SUFFIXES)}"
        )

    exported = trimesh.Trimesh(
        vertices=mesh.points, faces=mesh.triangles, process=False
    )
    exported.export(str(filepath))


def load_meshes(
    source: str | Path | list[str] | list[Path],
) -> list[TriangleMesh]:
    """Load multiple mesh files.

    Args:
        source: Either:
            - A glob pattern (e.g., "data/*.ply")
            - A directory path (loads all mesh files)
            - A list of file paths

    Returns:
        Meshes in sorted file name order

    Raises:
        ValueError: If no files are found
    """
    files = mesh_files(source)
    if not files:
        raise ValueError(f"No mesh files found: {source}")
    return [read_mesh(f) for f in files]


def get_filenames(
    source: str | Path | list[str] | list[Path],
) -> list[str]:
    """Get list of filenames from a source (for naming data items).

    Args:
        source: Same as load_meshes

    Returns:
        List of filenames (without directory path)
    """
    return [f.name for f in mesh_files(source)]


def read_landmarks(
    filepath: str | Path,
) -> NDArray[np.floating]:
    """Read landmarks from a file.

    Automatically detects the file format based on extension.

    Args:
        filepath: Path to landmark file (.fcsv or .mrk.json)

    Returns:
        Landmark coordinates, shape (n_landmarks, 3)

    Raises:
        ValueError: If file format is not supported
        FileNotFoundError: If file does not exist
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    suffix = filepath.suffix.lower()

    if suffix == ".json":
        return _read_markup_json(filepath)
    elif suffix == ".fcsv":
        return _read_fcsv(filepath)
    else:
        raise ValueError(
            f"Unsupported file format: {suffix}. "
            "Supported formats: .fcsv, .mrk.json"
        )


def write_landmarks(
    landmarks: NDArray[np.floating],
    filepath: str | Path,
    labels: list[str] | None = None,
) -> None:
    """Write landmarks to a file.

    Args:
        landmarks: Landmark coordinates, shape (n_landmarks, 3)
        filepath: Output file path (.fcsv or .mrk.json)
        labels: Optional labels for each landmark

    Raises:
        ValueError: If file format is not supported
    """
    filepath = Path(filepath)
    suffix = filepath.suffix.lower()

    if labels is None:
        labels = []
    labels = [
        labels[i] if i < len(labels) else f"F-{i + 1}" for i in range(len(landmarks))
    ]

    if suffix == ".json":
        _write_markup_json(landmarks, filepath, labels)
    elif suffix == ".fcsv":
        _write_fcsv(landmarks, filepath, labels)
    else:
        raise ValueError(
            f"Unsupported file format: {suffix}. "
            "Supported formats: .fcsv, .mrk.json"
        )


def mesh_files(source: str | Path | list[str] | list[Path]) -> list[Path]:
    """Resolve a directory, glob pattern or list of paths to sorted mesh files."""
    if isinstance(source, (str, Path)):
        source_path = Path(source)
        if source_path.is_dir():
            files = [
                f for f in source_path.iterdir() if f.suffix.lower() in MESH_SUFFIXES
            ]
        else:
            # Treat as glob pattern
            files = [Path(f) for f in glob_module.glob(str(source))]
    else:
        files = [Path(f) for f in source]

    # Sort for reproducibility
    return sorted(files)


def _read_fcsv(filepath: Path) -> NDArray[np.floating]:
    """Read landmarks from FCSV format.

    FCSV is a CSV format where:
    - Lines starting with # are headers/comments
    - Data columns: id, x, y, z, ...
    """
    data = []
    with open(filepath) as f:
        for row in f:
            if row.startswith("#"):
                continue
            parts = row.strip().split(",")
            if len(parts) >= 4:
                try:
                    data.append([float(parts[1]), float(parts[2]), float(parts[3])])
                except ValueError:
                    continue

    if not data:
        raise ValueError(f"No valid landmarks found in {filepath}")

    return np.array(data)


def _read_markup_json(filepath: Path) -> NDArray[np.floating]:
    """Read landmarks from 3D Slicer markup JSON format."""
    with open(filepath) as f:
        content = json.load(f)

    try:
        control_points = content["markups"][0]["controlPoints"]
    except (KeyError, IndexError) as e:
        raise ValueError(f"Invalid markup JSON format in {filepath}") from e

    if not control_points:
        raise ValueError(f"No valid landmarks found in {filepath}")

    df = pd.DataFrame.from_dict(control_points)
    if "positionStatus" in df:
        df = df[df["positionStatus"] != "missing"]

    return np.array(df["position"].tolist(), dtype=float)


def _write_fcsv(
    landmarks: NDArray[np.floating],
    filepath: Path,
    labels: list[str],
) -> None:
    with open(filepath, "w") as f:
        f.write("# Markups fiducial file version = 4.11\n")
        f.write("# CoordinateSystem = LPS\n")
        f.write("# columns = id,x,y,z,ow,ox,oy,oz,vis,sel,lock,label,desc,associatedNodeID\n")

        for i, (x, y, z) in enumerate(landmarks):
            f.write(
                f"vtkMRMLMarkupsFiducialNode_{i},{x},{y},{z},"
                f"0,0,0,1,1,1,0,{labels[i]},,\n"
            )


def _write_markup_json(
    landmarks: NDArray[np.floating],
    filepath: Path,
    labels: list[str],
) -> None:
    control_points = [
        {
            "id": str(i + 1),
            "label": labels[i],
            "description": "",
            "associatedNodeID": "",
            "position": [float(x), float(y), float(z)],
            "orientation": [-1.0, -0.0, -0.0, -0.0, -1.0, -0.0, 0.0, 0.0, 1.0],
            "selected": True,
            "locked": False,
            "visibility": True,
            "positionStatus": "defined",
        }
        for i, (x, y, z) in enumerate(landmarks)
    ]

    markup = {
        "@schema": "https://raw.githubusercontent.com/slicer/slicer/master/Modules/Loadable/Markups/Resources/Schema/markups-schema-v1.0.3.json#",
        "markups": [
            {
                "type": "Fiducial",
                "coordinateSystem": "LPS",
                "coordinateUnits": "mm",
                "locked": False,
                "fixedNumberOfControlPoints": False,
                "labelFormat": "%N-%d",
                "lastUsedControlPointNumber": len(control_points),
                "controlPoints": control_points,
            }
        ],
    }

    with open(filepath, "w") as f:
        json.dump(markup, f, indent=2)
