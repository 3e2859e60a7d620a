"""
Shared pytest fixtures for the effect material processor tests.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from scene_graph import GeometryContent, MaterialContent, MeshContent, NodeContent


# ============================================================================
# SOURCE DOCUMENTS
# ============================================================================

CAR_X = r'''xof 0303txt 0032

Frame Root {
  Mesh Car {
    4;
    0.0;0.0;0.0;, 1.0;0.0;0.0;, 1.0;1.0;0.0;, 0.0;1.0;0.0;;
    2;
    3;0,1,2;, 3;0,2,3;;

    MeshMaterialList {
      2;
      2;
      0,1;;

      Material Car_Body {
        1.000000;1.000000;1.000000;1.000000;;
        20.000000;
        0.000000;0.000000;0.000000;;
        0.000000;0.000000;0.000000;;
        EffectInstance {
          "..\\shaders\\CarPaint.fx";
          EffectParamDWord { "technique"; 2; }
          EffectParamString { "diffuseTexture"; "..\\textures\\Car.dds"; }
          EffectParamString { "note"; "a{b}c"; }
          EffectParamFloats { "ambientColor"; 4; 0.1, 0.2, 0.3, 1.0;; }
          EffectParamFloats { "shininess"; 1; 24.0;; }
        }
      }

      Material Car_Glass {
        0.500000;0.500000;0.500000;0.300000;;
        EffectInstance {
          "..\\shaders\\Glass.fx";
          EffectParamFloats { "reflection"; 2; 0.5, 0.25;; }
        }
      }
    }
  }
}
'''


@pytest.fixture
def content_dir(tmp_path: Path) -> Path:
    """Content tree with a model, its shaders and textures.

    content/
        models/Car.x
        shaders/CarPaint.fx, Glass.fx
        textures/Car.dds
    """
    root = tmp_path / "content"
    for sub in ("models", "shaders", "textures"):
        (root / sub).mkdir(parents=True)

    (root / "models" / "Car.x").write_text(CAR_X, encoding="utf-8")
    (root / "shaders" / "CarPaint.fx").write_text("// car paint", encoding="utf-8")
    (root / "shaders" / "Glass.fx").write_text("// glass", encoding="utf-8")
    (root / "textures" / "Car.dds").write_bytes(b"DDS ")
    return root


@pytest.fixture
def car_scene() -> NodeContent:
    """Scene tree matching CAR_X, as an importer would build it."""
    root = NodeContent(name="Root")
    car = root.add_child(MeshContent(name="Car"))
    car.geometry.append(GeometryContent(material=MaterialContent(name="Car_Body")))
    car.geometry.append(GeometryContent(material=MaterialContent(name="CAR_GLASS")))

    wheels = root.add_child(NodeContent(name="Wheels"))
    wheel = wheels.add_child(MeshContent(name="Wheel_FL"))
    wheel.geometry.append(GeometryContent(material=MaterialContent(name="Tire")))
    return root
