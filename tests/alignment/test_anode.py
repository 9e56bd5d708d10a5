import json
import unittest

import pytest

from hmmkit.alignment import ANode, tree_of


def make_tree():
    root = ANode(0, 10, "hello")
    h = root.append_child(4, "h")
    h.append_child(1, "h-1")
    h.append_child(4, "h-2")
    ello = root.append_child(10, "ello", value={"score": 1.5})
    ello.append_child(10, "ello-1")
    return root


class TestANode(unittest.TestCase):

    def test_structure(self):
        root = make_tree()
        self.assertTrue(root.is_valid())
        self.assertEqual(root.height(), 2)
        self.assertEqual(len(root), 10)
        self.assertEqual([leaf.name for leaf in root.leaves()], ["h-1", "h-2", "ello-1"])
        self.assertIs(root.children[0].parent, root)
        self.assertFalse(root.is_leaf)
        self.assertTrue(root.leaves()[0].is_leaf)

    def test_by_level(self):
        levels = make_tree().by_level()
        self.assertEqual([[n.name for n in level] for level in levels],
                         [["h-1", "h-2", "ello-1"], ["h", "ello"], ["hello"]])

    def test_append_child_bounds(self):
        root = ANode(0, 5)
        root.append_child(3)
        with self.assertRaises(ValueError):
            root.append_child(2)
        with self.assertRaises(ValueError):
            root.append_child(6)
        with self.assertRaises(ValueError):
            ANode(3, 2)

    def test_unbalanced_is_invalid(self):
        root = ANode(0, 4)
        a = root.append_child(2, "a")
        a.append_child(2, "a-1")
        root.append_child(4, "b")
        self.assertFalse(root.is_valid())

    def test_gap_is_invalid(self):
        root = ANode(0, 4)
        root.append_child(2, "a")
        self.assertFalse(root.is_valid())
        root.append_child(4, "b")
        self.assertTrue(root.is_valid())

    def test_equality(self):
        self.assertEqual(make_tree(), make_tree())
        other = make_tree()
        other.leaves()[1].name = "x"
        self.assertNotEqual(make_tree(), other)

    def test_json_roundtrip(self):
        root = make_tree()
        text = json.dumps(root.to_json())
        restored = ANode.from_json(json.loads(text))
        self.assertEqual(restored, root)
        self.assertTrue(restored.is_valid())
        self.assertEqual(restored.children[1].value, {"score": 1.5})

    def test_json_layout(self):
        levels = make_tree().to_json()
        self.assertEqual(levels[-1], [{"s": 0, "e": 10, "n": "hello"}])
        self.assertEqual(levels[1][1], {"s": 4, "e": 10, "n": "ello", "v": {"score": 1.5}})
        self.assertEqual(len(levels[0]), 3)

    def test_tree_of_requires_single_root(self):
        with self.assertRaises(ValueError):
            tree_of([[ANode(0, 1), ANode(1, 2)]])
        with self.assertRaises(ValueError):
            tree_of([])

    def test_zero_length_node_joins_following_parent(self):
        root = ANode(0, 4, "utt")
        a = root.append_child(2, "a")
        a.append_child(2, "a-1")
        b = root.append_child(4, "b")
        b.append_child(2, "b-0")
        b.append_child(4, "b-1")
        self.assertTrue(root.is_valid())
        restored = ANode.from_json(root.to_json())
        self.assertEqual(restored, root)
        self.assertEqual([c.name for c in restored.children[1].children], ["b-0", "b-1"])

    def test_zero_length_node_at_the_end(self):
        parents = [ANode(0, 2, "a"), ANode(2, 4, "b")]
        leaves = [ANode(0, 2), ANode(2, 4), ANode(4, 4, "tail")]
        root = tree_of([leaves, parents, [ANode(0, 4)]])
        self.assertEqual([c.name for c in root.children[1].children], ["", "tail"])

    def test_tree_of_rejects_orphans(self):
        with self.assertRaises(ValueError):
            tree_of([[ANode(0, 3), ANode(3, 6)], [ANode(0, 4)]])


@pytest.mark.parametrize("labels", [
    ["a"],
    ["a", "a", "a"],
    ["a", "b", "a", "a", "c", "c"],
    list("aabbbaaacccddddd"),
])
def test_from_labels_is_valid(labels):
    root = ANode.from_labels(labels, "utt")
    assert root.is_valid()
    assert root.name == "utt"
    assert len(root) == len(labels)
    expanded = [c.name for c in root.children for _ in range(len(c))]
    assert expanded == labels
    names = [c.name for c in root.children]
    assert all(x != y for x, y in zip(names, names[1:]))


def test_from_empty_labels():
    root = ANode.from_labels([])
    assert root.is_valid()
    assert len(root) == 0
    assert root.is_leaf
