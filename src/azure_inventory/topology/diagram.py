from __future__ import annotations

import random
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from ..normalize.schema import (
    NODE_APP_GATEWAY,
    NODE_LOAD_BALANCER,
    NODE_NIC,
    NODE_PUBLIC_IP,
    NODE_SUBNET,
    NODE_VNET,
    ApplicationGateway,
    DiagramEdge,
    DiagramNode,
    LoadBalancer,
    NetworkInterface,
    PublicIpAddress,
    Subnet,
    Subscription,
    VirtualNetwork,
)
from .ids import last_segment, sanitize_id
from .walker import OWNER_APP_GATEWAY, OWNER_LOAD_BALANCER, OWNER_NIC

# Node id prefix per resource kind
NODE_ID_PREFIXES: Dict[str, str] = {
    NODE_VNET: "vnet",
    NODE_SUBNET: "subnet",
    NODE_NIC: "nic",
    NODE_PUBLIC_IP: "pip",
    NODE_LOAD_BALANCER: "lb",
    NODE_APP_GATEWAY: "agw",
}

_OWNER_CATEGORY: Dict[str, str] = {
    OWNER_NIC: NODE_NIC,
    OWNER_LOAD_BALANCER: NODE_LOAD_BALANCER,
    OWNER_APP_GATEWAY: NODE_APP_GATEWAY,
}

LAYOUT_COLUMNS = 8
LAYOUT_ORIGIN = (40, 40)
LAYOUT_STEP = (320, 160)
NODE_SIZE = (160, 60)
SUBNET_SIZE = (240, 50)
VNET_WIDTH = 280
VNET_HEADER = 40
SUBNET_GAP = 10


def node_id(category: str, resource_id: str) -> str:
    return sanitize_id(resource_id, prefix=NODE_ID_PREFIXES[category])


def layout_position(counter: int) -> Tuple[int, int]:
    """Grid position for the counter-th top-level node."""
    col = counter % LAYOUT_COLUMNS
    row = counter // LAYOUT_COLUMNS
    return LAYOUT_ORIGIN[0] + col * LAYOUT_STEP[0], LAYOUT_ORIGIN[1] + row * LAYOUT_STEP[1]


class SubscriptionColors:
    """
    Memoized subscription -> fill color map, safe to share between workers.

    A color is picked the first time a subscription is seen and kept for the
    rest of the run. With a palette, colors are handed out in palette order;
    otherwise a light color is drawn from an RNG seeded once per run.
    """

    def __init__(self, *, seed: Optional[int] = None, palette: Optional[Sequence[str]] = None) -> None:
        self._lock = threading.Lock()
        self._rng = random.Random(seed)
        self._palette = list(palette or [])
        self._colors: Dict[str, str] = {}

    def _next_color(self) -> str:
        if self._palette:
            return self._palette[len(self._colors) % len(self._palette)]
        r, g, b = (self._rng.randint(150, 245) for _ in range(3))
        return f"#{r:02X}{g:02X}{b:02X}"

    def color_for(self, subscription_id: str) -> str:
        key = (subscription_id or "").lower()
        with self._lock:
            color = self._colors.get(key)
            if color is None:
                color = self._next_color()
                self._colors[key] = color
            return color

    def assignments(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._colors)


class DiagramBuilder:
    """
    Node/edge projection of the topology walk, fed by TopologyWalker events.

    One builder is shared by all workers for a run. Node ids are sanitized
    resource ids, so identical input always yields identical ids; positions
    come from a counter and only matter for rendering.
    """

    def __init__(self, colors: Optional[SubscriptionColors] = None) -> None:
        self.colors = colors if colors is not None else SubscriptionColors()
        self._lock = threading.Lock()
        self._nodes: Dict[str, DiagramNode] = {}
        self._edges: Dict[str, DiagramEdge] = {}
        self._children: Dict[str, int] = {}
        self._counter = 0

    def _add_node(
        self,
        category: str,
        resource_id: str,
        label: str,
        subscription: Subscription,
        *,
        parent: Optional[str] = None,
    ) -> str:
        nid = node_id(category, resource_id)
        color = self.colors.color_for(subscription.id)
        with self._lock:
            if nid in self._nodes:
                return nid
            if parent is not None:
                index = self._children.get(parent, 0)
                self._children[parent] = index + 1
                x = (VNET_WIDTH - SUBNET_SIZE[0]) // 2
                y = VNET_HEADER + index * (SUBNET_SIZE[1] + SUBNET_GAP)
                width, height = SUBNET_SIZE
            else:
                x, y = layout_position(self._counter)
                self._counter += 1
                width, height = (VNET_WIDTH, VNET_HEADER) if category == NODE_VNET else NODE_SIZE
            self._nodes[nid] = DiagramNode(
                id=nid,
                label=label,
                category=category,
                parent=parent,
                x=x,
                y=y,
                width=width,
                height=height,
                fill_color=color,
                subscription_id=subscription.id,
            )
        return nid

    def _add_edge(self, source: str, target: str, label: str = "") -> None:
        eid = f"edge-{source}-{target}"
        with self._lock:
            self._edges.setdefault(eid, DiagramEdge(id=eid, source=source, target=target, label=label))

    def on_virtual_network(self, subscription: Subscription, vnet: VirtualNetwork) -> None:
        label = f"{vnet.name}\n{', '.join(vnet.address_prefixes)}".strip()
        self._add_node(NODE_VNET, vnet.id, label, subscription)

    def on_subnet(self, subscription: Subscription, vnet: VirtualNetwork, subnet: Subnet) -> None:
        label = f"{subnet.name}\n{', '.join(subnet.address_prefixes)}".strip()
        self._add_node(NODE_SUBNET, subnet.id, label, subscription, parent=node_id(NODE_VNET, vnet.id))

    def on_network_interface(
        self, subscription: Subscription, nic: NetworkInterface, subnet_id: Optional[str], private_ip: str
    ) -> None:
        nid = self._add_node(NODE_NIC, nic.id, f"{nic.name}\n{private_ip}".strip(), subscription)
        if subnet_id:
            self._add_edge(node_id(NODE_SUBNET, subnet_id), nid)

    def on_load_balancer(self, subscription: Subscription, lb: LoadBalancer, subnet_id: Optional[str]) -> None:
        nid = self._add_node(NODE_LOAD_BALANCER, lb.id, lb.name, subscription)
        if subnet_id:
            self._add_edge(node_id(NODE_SUBNET, subnet_id), nid)

    def on_application_gateway(
        self, subscription: Subscription, gateway: ApplicationGateway, subnet_id: Optional[str]
    ) -> None:
        nid = self._add_node(NODE_APP_GATEWAY, gateway.id, gateway.name, subscription)
        if subnet_id:
            self._add_edge(node_id(NODE_SUBNET, subnet_id), nid)

    def on_public_ip(
        self,
        subscription: Subscription,
        public_ip_id: str,
        public_ip: Optional[PublicIpAddress],
        *,
        owner_kind: Optional[str],
        owner_id: Optional[str],
        associated_with: str,
    ) -> None:
        name = public_ip.name if public_ip else last_segment(public_ip_id)
        address = public_ip.ip_address if public_ip else ""
        label = f"{name}\n{address}".strip()
        if owner_kind is None and associated_with:
            label = f"{label}\n({associated_with})"
        nid = self._add_node(NODE_PUBLIC_IP, public_ip_id, label, subscription)
        category = _OWNER_CATEGORY.get(owner_kind or "")
        if category and owner_id:
            self._add_edge(node_id(category, owner_id), nid)

    def nodes(self) -> List[DiagramNode]:
        """Snapshot sorted parents-first, VNet containers sized to their subnets."""
        with self._lock:
            children = dict(self._children)
            nodes = list(self._nodes.values())
        out: List[DiagramNode] = []
        for node in nodes:
            if node.category == NODE_VNET and children.get(node.id):
                height = VNET_HEADER + children[node.id] * (SUBNET_SIZE[1] + SUBNET_GAP)
                node = replace(node, height=height)
            out.append(node)
        out.sort(key=lambda n: (n.parent is not None, n.id))
        return out

    def edges(self) -> List[DiagramEdge]:
        """Edges whose endpoints both exist, sorted by id."""
        with self._lock:
            node_ids = set(self._nodes)
            edges = list(self._edges.values())
        kept = [e for e in edges if e.source in node_ids and e.target in node_ids]
        kept.sort(key=lambda e: e.id)
        return kept
