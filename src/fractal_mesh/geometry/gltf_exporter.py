"""
glTF/GLB Export Module

Serializes a TriangleSoup into a single binary glTF 2.0 container:

    header   magic 'glTF' | version 2 | total length        (3 x uint32)
    JSON     length | 0x4E4F534A | manifest, space padded
    BIN      length | 0x004E4942 | positions | normals | indices, zero padded

The manifest is assembled from pygltflib model objects and describes one
scene, node, mesh and primitive with a metallic-roughness material.
Positions and normals are float32 VEC3, indices uint32 SCALAR.
"""

import io
import json
import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import numpy as np
from pygltflib import (
    ARRAY_BUFFER,
    ELEMENT_ARRAY_BUFFER,
    FLOAT,
    GLTF2,
    SCALAR,
    UNSIGNED_INT,
    VEC3,
    Accessor,
    Asset,
    Attributes,
    Buffer,
    BufferView,
    Material,
    Mesh as GLTFMesh,
    Node,
    PbrMetallicRoughness,
    Primitive,
    Scene,
)

from ..errors import InvalidParameterError, SerializationError
from .isosurface import TriangleSoup

logger = logging.getLogger(__name__)

GLB_MAGIC = 0x46546C67  # b'glTF'
GLB_VERSION = 2
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942
HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8

DEFAULT_GENERATOR = "fractal-mesh-export"
DEFAULT_MESH_NAME = "FractalMesh"
MAX_VERTICES = 2 ** 32 - 1


@dataclass
class MaterialSpec:
    """PBR metallic-roughness material written into the manifest."""
    name: str = "Fractal_Material"
    base_color: List[float] = field(default_factory=lambda: [0.9, 0.9, 0.92, 1.0])
    metallic: float = 0.0
    roughness: float = 0.6
    double_sided: bool = False

    def __post_init__(self):
        if isinstance(self.base_color, str):
            raise InvalidParameterError(f"base_color must be 4 numbers, got {self.base_color!r}")
        try:
            color = [_unit_float("base_color", c) for c in self.base_color]
        except TypeError as e:
            raise InvalidParameterError(f"base_color must be 4 numbers, got {self.base_color!r}") from e
        if len(color) != 4:
            raise InvalidParameterError(f"base_color needs 4 components, got {self.base_color}")
        self.base_color = color
        self.metallic = _unit_float("metallic", self.metallic)
        self.roughness = _unit_float("roughness", self.roughness)
        if not isinstance(self.double_sided, bool):
            raise InvalidParameterError(f"double_sided must be true or false, got {self.double_sided!r}")
        self.name = str(self.name)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MaterialSpec":
        data = dict(data or {})
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise InvalidParameterError(f"Unknown material keys: {sorted(unknown)}")
        return cls(**data)

    def to_gltf(self) -> Material:
        return Material(
            name=self.name,
            pbrMetallicRoughness=PbrMetallicRoughness(
                baseColorFactor=list(self.base_color),
                metallicFactor=self.metallic,
                roughnessFactor=self.roughness,
            ),
            doubleSided=True if self.double_sided else None,
        )


def _unit_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidParameterError(f"{name} must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"{name} must be numeric, got {value!r}") from e
    if not 0.0 <= number <= 1.0:
        raise InvalidParameterError(f"{name} must lie in [0, 1], got {value!r}")
    return number


class GLBHeader(NamedTuple):
    magic: int
    version: int
    length: int


class GLBContents(NamedTuple):
    header: GLBHeader
    manifest: Dict[str, Any]
    binary: bytes
    json_chunk_length: int
    bin_chunk_length: int


def _pad(data: bytes, fill: bytes) -> bytes:
    return data + fill * (-len(data) % 4)


class GLBWriter:
    """
    Builds GLB containers from triangle soups.

    The writer holds only presentation settings; every call to ``build``
    owns its own buffers.
    """

    def __init__(
        self,
        material: Optional[MaterialSpec] = None,
        mesh_name: str = DEFAULT_MESH_NAME,
        generator: str = DEFAULT_GENERATOR
    ):
        self.material = material or MaterialSpec()
        self.mesh_name = mesh_name
        self.generator = generator

    def build(self, soup: TriangleSoup, extras: Optional[Dict[str, Any]] = None) -> bytes:
        """
        Serialize ``soup`` to GLB bytes.

        Raises:
            SerializationError: If the buffers are inconsistent or empty
        """
        soup.validate()
        if soup.n_vertices > MAX_VERTICES:
            raise SerializationError(
                f"{soup.n_vertices} vertices exceed the uint32 index range"
            )

        positions = soup.positions.astype(np.float32)
        indices = soup.indices.astype(np.uint32)
        normals = soup.normals.astype(np.float32) if soup.normals is not None else None

        # Bounds of the data actually stored
        v_min = positions.min(axis=0).tolist()
        v_max = positions.max(axis=0).tolist()

        position_blob = positions.tobytes()
        normal_blob = normals.tobytes() if normals is not None else b""
        index_blob = indices.tobytes()

        manifest = self._manifest(
            n_vertices=len(positions),
            n_indices=indices.size,
            v_min=v_min,
            v_max=v_max,
            position_bytes=len(position_blob),
            normal_bytes=len(normal_blob) if normals is not None else None,
            index_bytes=len(index_blob),
            extras=extras,
        )

        blob = position_blob + normal_blob + index_blob
        glb = self.assemble(manifest, blob)
        logger.debug(
            f"GLB: {len(glb)} bytes ({len(position_blob)} position, "
            f"{len(normal_blob)} normal, {len(index_blob)} index)"
        )
        return glb

    def _manifest(
        self,
        n_vertices: int,
        n_indices: int,
        v_min: List[float],
        v_max: List[float],
        position_bytes: int,
        normal_bytes: Optional[int],
        index_bytes: int,
        extras: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        accessors = [
            Accessor(
                bufferView=0,
                componentType=FLOAT,
                count=n_vertices,
                type=VEC3,
                min=v_min,
                max=v_max
            )
        ]
        buffer_views = [
            BufferView(buffer=0, byteOffset=0, byteLength=position_bytes, target=ARRAY_BUFFER)
        ]
        attributes = Attributes(POSITION=0)
        offset = position_bytes

        if normal_bytes is not None:
            attributes.NORMAL = len(accessors)
            accessors.append(Accessor(
                bufferView=len(buffer_views),
                componentType=FLOAT,
                count=n_vertices,
                type=VEC3
            ))
            buffer_views.append(
                BufferView(buffer=0, byteOffset=offset, byteLength=normal_bytes, target=ARRAY_BUFFER)
            )
            offset += normal_bytes

        index_accessor = len(accessors)
        accessors.append(Accessor(
            bufferView=len(buffer_views),
            componentType=UNSIGNED_INT,
            count=n_indices,
            type=SCALAR
        ))
        buffer_views.append(
            BufferView(buffer=0, byteOffset=offset, byteLength=index_bytes, target=ELEMENT_ARRAY_BUFFER)
        )
        offset += index_bytes

        gltf = GLTF2(
            asset=Asset(version="2.0", generator=self.generator),
            scene=0,
            scenes=[Scene(nodes=[0])],
            nodes=[Node(mesh=0, name=self.mesh_name)],
            meshes=[GLTFMesh(
                name=self.mesh_name,
                primitives=[Primitive(attributes=attributes, indices=index_accessor, material=0)]
            )],
            materials=[self.material.to_gltf()],
            accessors=accessors,
            bufferViews=buffer_views,
            buffers=[Buffer(byteLength=offset)],
            extras=dict(extras or {})
        )
        # to_json drops unset (None or empty) fields
        try:
            return json.loads(gltf.to_json(allow_nan=False))
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Manifest is not serializable: {e}") from e

    @staticmethod
    def assemble(manifest: Dict[str, Any], blob: bytes) -> bytes:
        """Pack a manifest and binary payload into the GLB chunk layout."""
        try:
            json_text = json.dumps(manifest, separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Manifest is not serializable: {e}") from e

        json_data = _pad(json_text.encode("utf-8"), b" ")
        bin_data = _pad(blob, b"\x00")
        total_length = HEADER_SIZE + CHUNK_HEADER_SIZE + len(json_data) + CHUNK_HEADER_SIZE + len(bin_data)

        out = io.BytesIO()
        out.write(struct.pack("<III", GLB_MAGIC, GLB_VERSION, total_length))
        out.write(struct.pack("<II", len(json_data), CHUNK_JSON))
        out.write(json_data)
        out.write(struct.pack("<II", len(bin_data), CHUNK_BIN))
        out.write(bin_data)
        return out.getvalue()


def build_glb(
    soup: TriangleSoup,
    material: Optional[MaterialSpec] = None,
    mesh_name: str = DEFAULT_MESH_NAME,
    generator: str = DEFAULT_GENERATOR,
    extras: Optional[Dict[str, Any]] = None
) -> bytes:
    """Serialize ``soup`` to a GLB container (see GLBWriter.build)."""
    return GLBWriter(material, mesh_name, generator).build(soup, extras)


def read_glb_header(blob: bytes) -> GLBHeader:
    if len(blob) < HEADER_SIZE:
        raise SerializationError(f"Container too short for a header: {len(blob)} bytes")
    return GLBHeader(*struct.unpack_from("<III", blob, 0))


def _read_chunk(blob: bytes, offset: int, expected_type: int) -> Tuple[bytes, int]:
    if offset + CHUNK_HEADER_SIZE > len(blob):
        raise SerializationError(f"Truncated chunk header at byte {offset}")
    length, chunk_type = struct.unpack_from("<II", blob, offset)
    if chunk_type != expected_type:
        raise SerializationError(
            f"Unexpected chunk type 0x{chunk_type:08X} at byte {offset}, "
            f"expected 0x{expected_type:08X}"
        )
    start = offset + CHUNK_HEADER_SIZE
    if start + length > len(blob):
        raise SerializationError(f"Chunk at byte {offset} overruns the container")
    return blob[start:start + length], start + length


def parse_glb(blob: bytes) -> GLBContents:
    """
    Split a container into header, manifest and binary payload.

    Raises:
        SerializationError: If the container is malformed
    """
    header = read_glb_header(blob)
    if header.magic != GLB_MAGIC:
        raise SerializationError(f"Bad magic 0x{header.magic:08X}")
    if header.version != GLB_VERSION:
        raise SerializationError(f"Unsupported GLB version {header.version}")
    if header.length != len(blob):
        raise SerializationError(
            f"Header length {header.length} does not match container size {len(blob)}"
        )

    json_data, offset = _read_chunk(blob, HEADER_SIZE, CHUNK_JSON)
    bin_data, offset = _read_chunk(blob, offset, CHUNK_BIN)
    if offset != len(blob):
        raise SerializationError(f"{len(blob) - offset} trailing bytes after BIN chunk")

    try:
        manifest = json.loads(json_data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SerializationError(f"Invalid JSON chunk: {e}") from e

    return GLBContents(header, manifest, bin_data, len(json_data), len(bin_data))


def load_document(blob: bytes) -> GLTF2:
    """Load a container with pygltflib for inspection."""
    parse_glb(blob)
    return GLTF2.load_binary_from_file_object(io.BytesIO(blob))


def read_accessor(contents: GLBContents, accessor_index: int) -> np.ndarray:
    """Decode one accessor of a parsed container into a numpy array."""
    accessor = contents.manifest["accessors"][accessor_index]
    view = contents.manifest["bufferViews"][accessor["bufferView"]]
    dtype = {FLOAT: np.float32, UNSIGNED_INT: np.uint32}[accessor["componentType"]]
    width = {SCALAR: 1, VEC3: 3}[accessor["type"]]
    start = view.get("byteOffset", 0) + accessor.get("byteOffset", 0)
    data = np.frombuffer(contents.binary, dtype=dtype, count=accessor["count"] * width, offset=start)
    return data.reshape(-1, width) if width > 1 else data
