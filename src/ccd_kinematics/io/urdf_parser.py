"""URDF parser for building kinematic trees.

This module turns a URDF robot description into a ``Robot``: links and
joints wired into a tree, joint origins as homogeneous transforms, normalized
joint axes, limits and mimic references. Geometry, materials and inertial
data are ignored.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
from lxml import etree

from ..core import Joint, JointLimit, JointType, Link, MimicJoint, Robot
from ..errors import ParseError
from ..transforms import se3

logger = logging.getLogger(__name__)

Document = Union[str, bytes, etree._Element, etree._ElementTree]

_XML_PARSER = etree.XMLParser(remove_comments=True, resolve_entities=False, no_network=True)


def load_urdf(urdf_path: Union[str, Path]) -> Robot:
    """Load a URDF file and build its Robot.

    Args:
        urdf_path: Path to the URDF file to load.

    Returns:
        Robot: The kinematic tree with all joint values at zero.

    Raises:
        ParseError: The file is not a valid robot description.
        OSError: The file cannot be read.
    """
    try:
        tree = etree.parse(str(urdf_path), _XML_PARSER)
    except etree.XMLSyntaxError as exc:
        raise ParseError(f"Malformed URDF '{urdf_path}': {exc}") from exc
    return parse_urdf(tree)


def parse_urdf(doc: Document) -> Robot:
    """Build a Robot from URDF text or an already parsed element.

    Args:
        doc: URDF as ``str``/``bytes``, or an lxml element/tree.

    Returns:
        Robot: The kinematic tree with all joint values at zero.

    Raises:
        ParseError: The description is malformed (see module docs).
    """
    root = _document_root(doc)
    if root.tag != 'robot':
        raise ParseError(f"Expected a <robot> root element, found <{root.tag}>")

    # First pass: links
    links: Dict[str, Link] = {}
    for link_elem in root.findall('link'):
        name = _required(link_elem, 'name', 'link')
        if name in links:
            raise ParseError(f"Duplicate link name '{name}'")
        links[name] = Link(name)

    # Second pass: joints, wired into the link tree
    joints: List[Joint] = []
    seen = set()
    for joint_elem in root.findall('joint'):
        joint = _parse_joint(joint_elem, links)
        if joint.name in seen:
            raise ParseError(f"Duplicate joint name '{joint.name}'")
        seen.add(joint.name)
        joints.append(joint)

    _check_tree(list(links.values()))

    robot = Robot(name=root.get('name', ''), links=list(links.values()), joints=joints)
    logger.debug(
        "Parsed URDF robot %r rooted at %r",
        robot.name, robot.root.name if robot.root is not None else None,
    )
    return robot


def _document_root(doc: Document) -> etree._Element:
    if isinstance(doc, etree._ElementTree):
        return doc.getroot()
    if isinstance(doc, etree._Element):
        return doc
    if isinstance(doc, str):
        doc = doc.encode('utf-8')
    try:
        return etree.fromstring(doc, _XML_PARSER)
    except etree.XMLSyntaxError as exc:
        raise ParseError(f"Malformed URDF: {exc}") from exc


def _parse_joint(joint_elem: etree._Element, links: Dict[str, Link]) -> Joint:
    name = _required(joint_elem, 'name', 'joint')
    type_name = _required(joint_elem, 'type', f"joint '{name}'")
    try:
        joint_type = JointType(type_name)
    except ValueError:
        raise ParseError(f"Joint '{name}' has unsupported type '{type_name}'")

    parent = _joint_link(joint_elem, 'parent', name, links)
    child = _joint_link(joint_elem, 'child', name, links)
    if child.parent_joint is not None:
        raise ParseError(
            f"Link '{child.name}' is the child of both '{child.parent_joint.name}' and '{name}'"
        )

    # Parse origin transform
    origin_elem = joint_elem.find('origin')
    xyz = rpy = (0.0, 0.0, 0.0)
    if origin_elem is not None:
        xyz = _parse_vector(origin_elem.get('xyz'), (0.0, 0.0, 0.0), f"joint '{name}' origin xyz")
        rpy = _parse_vector(origin_elem.get('rpy'), (0.0, 0.0, 0.0), f"joint '{name}' origin rpy")
    origin = np.asarray(se3.from_origin(xyz, rpy))

    # Parse joint axis
    axis_elem = joint_elem.find('axis')
    axis = np.array([0.0, 0.0, 1.0])
    if axis_elem is not None:
        axis = np.array(_parse_vector(axis_elem.get('xyz'), (0.0, 0.0, 1.0), f"joint '{name}' axis"))
    norm = np.linalg.norm(axis)
    if norm < 1e-12:
        if joint_type.is_movable:
            raise ParseError(f"Joint '{name}' has a zero-length axis")
        axis = np.array([0.0, 0.0, 1.0])
    else:
        axis = axis / norm

    limit = None
    limit_elem = joint_elem.find('limit')
    if limit_elem is not None and joint_type is not JointType.CONTINUOUS:
        limit = JointLimit(
            lower=_parse_float(limit_elem.get('lower'), f"joint '{name}' limit lower"),
            upper=_parse_float(limit_elem.get('upper'), f"joint '{name}' limit upper"),
        )

    common = dict(
        name=name, joint_type=joint_type, parent=parent, child=child,
        origin=origin, axis=axis, limit=limit,
    )
    mimic_elem = joint_elem.find('mimic')
    if mimic_elem is not None:
        joint = MimicJoint(
            driver=_required(mimic_elem, 'joint', f"joint '{name}' mimic"),
            multiplier=_parse_float(mimic_elem.get('multiplier'), f"joint '{name}' mimic multiplier", 1.0),
            offset=_parse_float(mimic_elem.get('offset'), f"joint '{name}' mimic offset", 0.0),
            **common,
        )
    else:
        joint = Joint(**common)

    parent.child_joints.append(joint)
    child.parent_joint = joint
    return joint


def _joint_link(joint_elem: etree._Element, tag: str, joint_name: str, links: Dict[str, Link]) -> Link:
    elem = joint_elem.find(tag)
    if elem is None:
        raise ParseError(f"Joint '{joint_name}' has no <{tag}> element")
    link_name = _required(elem, 'link', f"joint '{joint_name}' <{tag}>")
    if link_name not in links:
        raise ParseError(f"Joint '{joint_name}' references undeclared link '{link_name}'")
    return links[link_name]


def _check_tree(links: Sequence[Link]) -> None:
    """Exactly one root, and every link reachable from it."""
    if not links:
        return
    roots = [link for link in links if link.is_root]
    if len(roots) != 1:
        raise ParseError(f"Expected exactly one root link, found: {sorted(l.name for l in roots)}")

    reached = 0
    stack = [roots[0]]
    while stack:
        link = stack.pop()
        reached += 1
        stack.extend(joint.child for joint in link.child_joints)
    if reached != len(links):
        raise ParseError("Joint graph contains a cycle: some links are unreachable from the root")


def _required(elem: etree._Element, attr: str, what: str) -> str:
    value = elem.get(attr)
    if value is None:
        raise ParseError(f"Missing '{attr}' attribute on {what}")
    return value


def _parse_float(text: Optional[str], what: str, default: Optional[float] = None) -> Optional[float]:
    if text is None:
        return default
    try:
        return float(text)
    except ValueError:
        raise ParseError(f"Invalid number '{text}' for {what}")


def _parse_vector(text: Optional[str], default: Sequence[float], what: str) -> tuple:
    if text is None or not text.strip():
        return tuple(default)
    try:
        values = tuple(float(x) for x in text.split())
    except ValueError:
        raise ParseError(f"Invalid vector '{text}' for {what}")
    if len(values) != 3:
        raise ParseError(f"Expected 3 values for {what}, got {len(values)}")
    return values
