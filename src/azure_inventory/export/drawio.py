from __future__ import annotations

from pathlib import Path
from typing import Dict, Sequence, Set, Tuple

from lxml import etree

from ..normalize.schema import (
    NODE_APP_GATEWAY,
    NODE_LOAD_BALANCER,
    NODE_NIC,
    NODE_PUBLIC_IP,
    NODE_SUBNET,
    NODE_VNET,
    DiagramEdge,
    DiagramNode,
)
from ..util.errors import ExportError

TOPOLOGY_PAGE = "Network Topology"
LEGEND_PAGE = "Legend"

_CANVAS_ATTRIBUTES: Dict[str, str] = {
    "dx": "1422",
    "dy": "794",
    "grid": "1",
    "gridSize": "10",
    "guides": "1",
    "tooltips": "1",
    "connect": "1",
    "arrows": "1",
    "fold": "1",
    "page": "1",
    "pageScale": "1",
    "pageWidth": "1654",
    "pageHeight": "1169",
    "math": "0",
    "shadow": "0",
}

_NODE_STYLES: Dict[str, str] = {
    NODE_VNET: "swimlane;whiteSpace=wrap;startSize=40;container=1;collapsible=0;strokeColor=#0078D4;fillColor={fill};",
    NODE_SUBNET: "rounded=1;whiteSpace=wrap;strokeColor=#5C2D91;fillColor=#FFFFFF;",
    NODE_NIC: "shape=hexagon;perimeter=hexagonPerimeter2;whiteSpace=wrap;size=0.15;strokeColor=#107C10;fillColor={fill};",
    NODE_PUBLIC_IP: "ellipse;whiteSpace=wrap;strokeColor=#E81123;fillColor={fill};",
    NODE_LOAD_BALANCER: "shape=process;whiteSpace=wrap;strokeColor=#FF8C00;fillColor={fill};",
    NODE_APP_GATEWAY: "shape=parallelogram;perimeter=parallelogramPerimeter;whiteSpace=wrap;strokeColor=#008575;fillColor={fill};",
}
_EDGE_STYLE = "edgeStyle=orthogonalEdgeStyle;rounded=0;endArrow=block;strokeColor=#666666;"

_LEGEND_ENTRIES: Tuple[Tuple[str, str], ...] = (
    (NODE_VNET, "Virtual network (container, colored per subscription)"),
    (NODE_SUBNET, "Subnet"),
    (NODE_NIC, "Network interface"),
    (NODE_PUBLIC_IP, "Public IP address"),
    (NODE_LOAD_BALANCER, "Load balancer"),
    (NODE_APP_GATEWAY, "Application gateway"),
)
_LEGEND_FILL = "#F2F2F2"


def node_style(node: DiagramNode) -> str:
    template = _NODE_STYLES.get(node.category, "rounded=0;whiteSpace=wrap;fillColor={fill};")
    return template.format(fill=node.fill_color or "#FFFFFF")


def _page(mxfile: etree._Element, name: str, page_id: str) -> etree._Element:
    diagram = etree.SubElement(mxfile, "diagram", id=page_id, name=name)
    model = etree.SubElement(diagram, "mxGraphModel", attrib=_CANVAS_ATTRIBUTES)
    root = etree.SubElement(model, "root")
    etree.SubElement(root, "mxCell", id="0")
    etree.SubElement(root, "mxCell", id="1", parent="0")
    return root


def _vertex(root: etree._Element, cell_id: str, label: str, style: str, parent: str, geometry: Sequence[int]) -> None:
    cell = etree.SubElement(
        root,
        "mxCell",
        id=cell_id,
        value=label,
        style=style,
        vertex="1",
        parent=parent,
    )
    x, y, width, height = geometry
    etree.SubElement(
        cell,
        "mxGeometry",
        attrib={"x": str(x), "y": str(y), "width": str(width), "height": str(height), "as": "geometry"},
    )


def _edge(root: etree._Element, edge: DiagramEdge) -> None:
    cell = etree.SubElement(
        root,
        "mxCell",
        id=edge.id,
        value=edge.label,
        style=_EDGE_STYLE,
        edge="1",
        parent="1",
        source=edge.source,
        target=edge.target,
    )
    etree.SubElement(cell, "mxGeometry", attrib={"relative": "1", "as": "geometry"})


def _legend_page(mxfile: etree._Element) -> None:
    root = _page(mxfile, LEGEND_PAGE, "legend")
    for i, (category, text) in enumerate(_LEGEND_ENTRIES):
        y = 40 + i * 80
        sample = DiagramNode(id=f"legend-{category}", label="", category=category, fill_color=_LEGEND_FILL)
        _vertex(root, sample.id, "", node_style(sample), "1", (40, y, 120, 50))
        _vertex(root, f"legend-{category}-text", text, "text;align=left;verticalAlign=middle;", "1", (180, y, 360, 50))


def build_drawio_document(
    nodes: Sequence[DiagramNode],
    edges: Sequence[DiagramEdge],
    *,
    include_legend: bool = False,
) -> etree._Element:
    """
    Build an mxfile document: a topology page with the given nodes and edges
    and, optionally, a static legend page. Parent nodes must precede their
    children in `nodes`.
    """
    mxfile = etree.Element("mxfile", attrib={"host": "az-inv", "type": "device"})
    root = _page(mxfile, TOPOLOGY_PAGE, "topology")
    known: Set[str] = set()
    for node in nodes:
        parent = node.parent if node.parent in known else "1"
        _vertex(root, node.id, node.label, node_style(node), parent, (node.x, node.y, node.width, node.height))
        known.add(node.id)
    for edge in edges:
        _edge(root, edge)
    if include_legend:
        _legend_page(mxfile)
    return mxfile


def write_drawio(
    path: Path,
    nodes: Sequence[DiagramNode],
    edges: Sequence[DiagramEdge],
    *,
    include_legend: bool = False,
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    document = build_drawio_document(nodes, edges, include_legend=include_legend)
    try:
        etree.ElementTree(document).write(str(path), pretty_print=True, xml_declaration=True, encoding="UTF-8")
    except OSError as e:
        raise ExportError(f"Failed to write diagram {path}: {e}") from e
    return path
