"""
Tests for GLB serialization

Tests cover:
- Container header and chunk layout
- Manifest contents (accessors, buffer views, material)
- Binary payload decoding
- Rejection of inconsistent meshes and malformed containers
"""

import struct

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fractal_mesh.errors import InvalidParameterError, SerializationError
from fractal_mesh.geometry.gltf_exporter import (
    CHUNK_BIN,
    CHUNK_JSON,
    GLB_MAGIC,
    GLBWriter,
    MaterialSpec,
    build_glb,
    load_document,
    parse_glb,
    read_accessor,
    read_glb_header,
)
from fractal_mesh.geometry.isosurface import TriangleSoup
from fractal_mesh.geometry.normals import estimate_normals


# ============== Fixtures ==============

@pytest.fixture
def tetra():
    """Closed tetrahedron with outward winding."""
    positions = np.array([
        [0.0, 0.0, 0.0],
        [1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
        [0.0, 0.0, 1.0],
    ])
    indices = np.array([
        [0, 2, 1],
        [0, 1, 3],
        [0, 3, 2],
        [1, 2, 3],
    ])
    return TriangleSoup(positions=positions, indices=indices)


@pytest.fixture
def tetra_with_normals(tetra):
    return estimate_normals(tetra)


# ============== Layout Tests ==============

class TestLayout:
    """Tests for the binary container layout."""

    def test_header(self, tetra_with_normals):
        glb = build_glb(tetra_with_normals)
        magic, version, length = struct.unpack_from("<III", glb, 0)
        assert glb[:4] == b"glTF"
        assert magic == GLB_MAGIC
        assert version == 2
        assert length == len(glb)
        assert read_glb_header(glb).length == len(glb)

    def test_chunks_are_aligned(self, tetra_with_normals):
        glb = build_glb(tetra_with_normals)
        json_len, json_type = struct.unpack_from("<II", glb, 12)
        assert json_type == CHUNK_JSON
        assert json_len % 4 == 0

        bin_offset = 20 + json_len
        bin_len, bin_type = struct.unpack_from("<II", glb, bin_offset)
        assert bin_type == CHUNK_BIN
        assert bin_len % 4 == 0
        assert bin_offset + 8 + bin_len == len(glb)

    def test_json_padding_is_spaces(self):
        soup = TriangleSoup(np.eye(3), np.array([[0, 1, 2]]))
        glb = build_glb(soup)
        contents = parse_glb(glb)
        json_chunk = glb[20:20 + contents.json_chunk_length]
        assert json_chunk.rstrip(b" ").endswith(b"}")

    def test_buffer_views_with_normals(self, tetra_with_normals):
        contents = parse_glb(build_glb(tetra_with_normals))
        views = contents.manifest["bufferViews"]
        assert [v["byteOffset"] for v in views] == [0, 48, 96]
        assert [v["byteLength"] for v in views] == [48, 48, 48]
        assert [v["target"] for v in views] == [34962, 34962, 34963]
        assert contents.manifest["buffers"] == [{"byteLength": 144}]
        assert contents.bin_chunk_length == 144

    def test_buffer_views_without_normals(self, tetra):
        contents = parse_glb(build_glb(tetra))
        manifest = contents.manifest
        assert len(manifest["bufferViews"]) == 2
        assert len(manifest["accessors"]) == 2
        primitive = manifest["meshes"][0]["primitives"][0]
        assert primitive["attributes"] == {"POSITION": 0}
        assert primitive["indices"] == 1

    def test_buffer_length_without_normals(self):
        positions = np.arange(21, dtype=float).reshape(7, 3)
        soup = TriangleSoup(positions, np.array([[0, 1, 2], [2, 3, 4], [4, 5, 6]]))
        contents = parse_glb(build_glb(soup))
        # 7 * 12 position bytes + 9 * 4 index bytes
        assert contents.manifest["buffers"][0]["byteLength"] == 120
        assert contents.bin_chunk_length == 120


# ============== Manifest Tests ==============

class TestManifest:
    """Tests for manifest contents."""

    def test_accessors(self, tetra_with_normals):
        manifest = parse_glb(build_glb(tetra_with_normals)).manifest
        position, normal, index = manifest["accessors"]

        assert position["componentType"] == 5126
        assert position["type"] == "VEC3"
        assert position["count"] == 4
        assert position["min"] == [0.0, 0.0, 0.0]
        assert position["max"] == [1.0, 1.0, 1.0]

        assert normal["componentType"] == 5126
        assert normal["count"] == 4

        assert index["componentType"] == 5125
        assert index["type"] == "SCALAR"
        assert index["count"] == 12

    def test_scene_graph(self, tetra):
        manifest = parse_glb(build_glb(tetra, mesh_name="Gyroid")).manifest
        assert manifest["asset"]["version"] == "2.0"
        assert manifest["scene"] == 0
        assert manifest["scenes"] == [{"nodes": [0]}]
        assert manifest["nodes"][0]["mesh"] == 0
        assert manifest["meshes"][0]["name"] == "Gyroid"
        assert manifest["meshes"][0]["primitives"][0]["material"] == 0

    def test_default_material(self, tetra):
        material = parse_glb(build_glb(tetra)).manifest["materials"][0]
        assert material["name"] == "Fractal_Material"
        pbr = material["pbrMetallicRoughness"]
        assert pbr["baseColorFactor"] == pytest.approx([0.9, 0.9, 0.92, 1.0])
        assert pbr["metallicFactor"] == 0.0
        assert pbr["roughnessFactor"] == 0.6
        assert "doubleSided" not in material

    def test_custom_material(self, tetra):
        spec = MaterialSpec.from_dict({"base_color": [1, 0, 0, 1], "metallic": 0.5, "double_sided": True})
        material = parse_glb(build_glb(tetra, material=spec)).manifest["materials"][0]
        assert material["pbrMetallicRoughness"]["baseColorFactor"] == [1.0, 0.0, 0.0, 1.0]
        assert material["pbrMetallicRoughness"]["metallicFactor"] == 0.5
        assert material["doubleSided"] is True

    def test_material_rejects_unknown_keys(self):
        with pytest.raises(InvalidParameterError):
            MaterialSpec.from_dict({"colour": [1, 1, 1, 1]})
        with pytest.raises(InvalidParameterError):
            MaterialSpec.from_dict({"base_color": [1, 1, 1]})

    @pytest.mark.parametrize("data", [
        {"roughness": "shiny"},
        {"metallic": None},
        {"metallic": 1.5},
        {"roughness": float("nan")},
        {"base_color": [1, "red", 0, 1]},
        {"base_color": "white"},
        {"base_color": 7},
        {"double_sided": "yes"},
    ])
    def test_material_rejects_bad_values(self, data):
        with pytest.raises(InvalidParameterError):
            MaterialSpec.from_dict(data)

    def test_material_coerces_numbers(self):
        spec = MaterialSpec.from_dict({"base_color": ("1", 0, 0.5, 1), "roughness": "0.25"})
        assert spec.base_color == [1.0, 0.0, 0.5, 1.0]
        assert spec.roughness == 0.25

    def test_unset_fields_left_out(self, tetra):
        manifest = parse_glb(build_glb(tetra)).manifest
        assert "extras" not in manifest
        assert "min" not in manifest["accessors"][1]
        assert manifest["meshes"][0]["primitives"][0]["mode"] == 4

    def test_extras(self, tetra):
        extras = {"variant": "gyroid", "params": {"gyro_scale": 3.0}}
        manifest = parse_glb(GLBWriter().build(tetra, extras=extras)).manifest
        assert manifest["extras"] == extras


# ============== Payload Tests ==============

class TestPayload:
    """Tests for the binary payload."""

    def test_positions_round_trip_as_float32(self, tetra_with_normals):
        contents = parse_glb(build_glb(tetra_with_normals))
        np.testing.assert_array_equal(read_accessor(contents, 0), tetra_with_normals.positions.astype(np.float32))
        np.testing.assert_allclose(read_accessor(contents, 1), tetra_with_normals.normals, atol=1e-6)

    def test_indices(self, tetra_with_normals):
        contents = parse_glb(build_glb(tetra_with_normals))
        indices = read_accessor(contents, 2)
        assert indices.dtype == np.uint32
        np.testing.assert_array_equal(indices, tetra_with_normals.indices.reshape(-1))

    def test_pygltflib_loads_container(self, tetra_with_normals):
        gltf = load_document(build_glb(tetra_with_normals))
        assert len(gltf.meshes) == 1
        assert len(gltf.accessors) == 3
        assert gltf.meshes[0].primitives[0].attributes.POSITION == 0
        assert gltf.meshes[0].primitives[0].attributes.NORMAL == 1
        assert gltf.buffers[0].byteLength == 144


# ============== Error Tests ==============

class TestErrors:
    """Serialization failures."""

    def test_empty_mesh(self):
        with pytest.raises(SerializationError):
            build_glb(TriangleSoup.empty())

    def test_index_out_of_range(self):
        soup = TriangleSoup(np.eye(3), np.array([[0, 1, 5]]))
        with pytest.raises(SerializationError):
            build_glb(soup)

    def test_normal_count_mismatch(self, tetra):
        tetra.normals = np.zeros((2, 3))
        with pytest.raises(SerializationError):
            build_glb(tetra)

    def test_non_finite_position(self, tetra):
        tetra.positions[1, 0] = np.nan
        with pytest.raises(SerializationError):
            build_glb(tetra)

    def test_parse_rejects_bad_magic(self, tetra):
        glb = bytearray(build_glb(tetra))
        glb[0:4] = b"gltf"
        with pytest.raises(SerializationError):
            parse_glb(bytes(glb))

    def test_parse_rejects_wrong_length(self, tetra):
        glb = build_glb(tetra)
        with pytest.raises(SerializationError):
            parse_glb(glb + b"\x00\x00\x00\x00")
        with pytest.raises(SerializationError):
            parse_glb(glb[:-4])

    def test_parse_rejects_short_blob(self):
        with pytest.raises(SerializationError):
            parse_glb(b"glTF")
