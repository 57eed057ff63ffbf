"""
Non-Maximum Suppression for TrackAI detections.

Greedy, score-prioritized suppression over (left, top, width, height)
rectangles. Suppression is class-agnostic by default: with the single
"person" class used on the robot this matches per-class suppression, and
a per-class partition can be requested for multi-class models.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


def compute_iou(box_a: Sequence[float], box_b: Sequence[float]) -> float:
    """
    Compute Intersection over Union of two (left, top, width, height) boxes.

    Boxes with non-positive width or height have zero area. Returns 0.0 when
    the union is empty.
    """
    ax, ay, aw, ah = box_a
    bx, by, bw, bh = box_b

    aw, ah = max(aw, 0), max(ah, 0)
    bw, bh = max(bw, 0), max(bh, 0)

    # Intersection
    xi1 = max(ax, bx)
    yi1 = max(ay, by)
    xi2 = min(ax + aw, bx + bw)
    yi2 = min(ay + ah, by + bh)

    inter_area = max(0, xi2 - xi1) * max(0, yi2 - yi1)

    # Union
    union_area = aw * ah + bw * bh - inter_area

    return float(inter_area / union_area) if union_area > 0 else 0.0


def _greedy_suppress(
    order: List[int],
    boxes: Sequence[Sequence[float]],
    nms_threshold: float,
) -> List[int]:
    """Run greedy NMS over candidate indices already sorted by priority."""
    keep: List[int] = []
    remaining = list(order)

    while remaining:
        best = remaining.pop(0)
        keep.append(best)
        remaining = [
            idx for idx in remaining
            if compute_iou(boxes[best], boxes[idx]) < nms_threshold
        ]

    return keep


def non_max_suppression(
    boxes: Sequence[Sequence[float]],
    scores: Sequence[float],
    score_threshold: float,
    nms_threshold: float = 0.5,
    class_ids: Optional[Sequence[int]] = None,
    class_agnostic: bool = True,
) -> List[int]:
    """
    Select a disjoint subset of boxes by greedy non-maximum suppression.

    Candidates scoring at or below ``score_threshold`` are dropped. The rest
    are visited in descending score order (ties broken by original index);
    each selected box discards every remaining box whose IoU with it is at
    least ``nms_threshold``.

    Args:
        boxes: Rectangles as (left, top, width, height)
        scores: One confidence per box
        score_threshold: Minimum (exclusive) score to be considered
        nms_threshold: IoU at which a lower-scoring box is suppressed
        class_ids: Optional class per box, used when not class-agnostic
        class_agnostic: Suppress across classes (default) or within each class

    Returns:
        Indices of surviving boxes in survival order

    Raises:
        ValueError: If input lengths differ or per-class suppression is
            requested without class ids
    """
    if len(boxes) != len(scores):
        raise ValueError(
            f"boxes and scores length mismatch: {len(boxes)} != {len(scores)}"
        )
    if class_ids is not None and len(class_ids) != len(boxes):
        raise ValueError(
            f"class_ids length mismatch: {len(class_ids)} != {len(boxes)}"
        )
    if not class_agnostic and class_ids is None:
        raise ValueError("class_ids are required for per-class suppression")

    if len(boxes) == 0:
        return []

    score_array = np.asarray(scores, dtype=np.float64)

    # Stable sort keeps the original index order among equal scores
    order = [
        int(idx) for idx in np.argsort(-score_array, kind="stable")
        if score_array[idx] > score_threshold
    ]

    if class_agnostic:
        keep = _greedy_suppress(order, boxes, nms_threshold)
    else:
        partitions: Dict[int, List[int]] = defaultdict(list)
        for idx in order:
            partitions[int(class_ids[idx])].append(idx)

        survivors = set()
        for class_order in partitions.values():
            survivors.update(_greedy_suppress(class_order, boxes, nms_threshold))

        keep = [idx for idx in order if idx in survivors]

    logger.debug(f"NMS kept {len(keep)}/{len(boxes)} boxes")
    return keep
