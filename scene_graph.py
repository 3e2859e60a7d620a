"""Scene-node tree handed to the material processor.

These types mirror the content-pipeline scene graph that a model importer
builds from a .x file: a tree of nodes, some of which are meshes holding
geometry batches, each batch pointing at a material. The processor only
reads names and swaps the material attached to a geometry batch; building
the tree and serializing it afterwards is the importer's job.

Structure:
    NodeContent "Root"
        MeshContent "Car"
            GeometryContent -> MaterialContent "Car_Body"
            GeometryContent -> MaterialContent "Car_Glass"
        NodeContent "Wheels"
            MeshContent "Wheel_FL"
                GeometryContent -> MaterialContent "Tire"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass(frozen=True)
class ExternalReference:
    """Reference to an asset file outside the scene (effect or texture).

    Attributes:
        filename: Absolute path of the referenced file.
    """

    filename: str


@dataclass
class MaterialContent:
    """Basic material: a name plus named textures and opaque values.

    Attributes:
        name: Material name as declared in the source file.
        textures: Texture references keyed by parameter name.
        opaque_data: Arbitrary named values (colors, flags, shader inputs).
    """

    name: str | None = None
    textures: dict[str, ExternalReference] = field(default_factory=dict)
    opaque_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class EffectMaterialContent(MaterialContent):
    """Material bound to a custom effect file.

    Attributes:
        effect: Reference to the effect (.fx) source, or None if unset.
    """

    effect: ExternalReference | None = None


@dataclass
class GeometryContent:
    """One geometry batch of a mesh, drawn with a single material."""

    material: MaterialContent | None = None


@dataclass(eq=False)
class NodeContent:
    """Scene node. Children are owned and ordered.

    Nodes compare by identity; two nodes with the same name are still
    different nodes.
    """

    name: str | None = None
    children: list[NodeContent] = field(default_factory=list)
    parent: NodeContent | None = field(default=None, repr=False)

    def add_child(self, child: NodeContent) -> NodeContent:
        child.parent = self
        self.children.append(child)
        return child


@dataclass(eq=False)
class MeshContent(NodeContent):
    """Scene node carrying mesh geometry."""

    geometry: list[GeometryContent] = field(default_factory=list)


def walk(node: NodeContent) -> Iterator[NodeContent]:
    """Yield node and all of its descendants, depth-first, parents first."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))
