"""
Metal/Material registry snapshot.

Every weight computation receives a ``MetalRegistry`` loaded once per request
instead of querying metals itself. The snapshot is immutable, so a dashboard
that folds thousands of items sees one consistent conversion table.

Order items store the metal *name*. A name that is not in the registry (a
deleted or renamed metal on a historical order) resolves to the unknown-metal
fallback: ratio 1, purity 0, material ``UNKNOWN_MATERIAL``, flagged with
``is_known=False`` so views can show an "Unknown metal" marker.
"""
from types import MappingProxyType
from typing import Iterable, NamedTuple, Optional

from .models import Metal

UNKNOWN_MATERIAL = 'Unknown'
UNKNOWN_METAL_LABEL = 'Unknown metal'


class ResolvedMetal(NamedTuple):
    name: str
    conversion_ratio: float
    purity: float
    material_name: str
    material_id: Optional[int] = None
    min_order_weight: float = 0.0
    is_known: bool = True

    @property
    def pure_applicable(self):
        """Pure weight is meaningless for materials without purity (e.g. Silver)"""
        return self.purity > 0

    @property
    def label(self):
        return self.name if self.is_known else f"{self.name or '-'} ({UNKNOWN_METAL_LABEL})"


def unknown_metal(name):
    return ResolvedMetal(
        name=name or '',
        conversion_ratio=1.0,
        purity=0.0,
        material_name=UNKNOWN_MATERIAL,
        is_known=False,
    )


class MetalRegistry:
    """Immutable name -> ResolvedMetal lookup"""

    def __init__(self, metals: Iterable[ResolvedMetal] = ()):
        self._by_name = MappingProxyType({metal.name: metal for metal in metals})

    @classmethod
    def load(cls, visible_only=False):
        """Snapshot metals; weights use every metal since hidden ones still weigh historical items"""
        rows = Metal.objects.select_related('material').all()
        if visible_only:
            rows = rows.filter(is_visible=True, material__is_visible=True)
        return cls(
            ResolvedMetal(
                name=row.name,
                conversion_ratio=row.conversion_ratio,
                purity=row.purity,
                material_name=row.material.name,
                material_id=row.material_id,
                min_order_weight=row.material.min_order_weight,
            )
            for row in rows
        )

    def resolve(self, name) -> ResolvedMetal:
        metal = self._by_name.get(name or '')
        if metal is None:
            return unknown_metal(name)
        return metal

    def __contains__(self, name):
        return name in self._by_name

    def __len__(self):
        return len(self._by_name)

    def __iter__(self):
        return iter(self._by_name.values())

    def materials(self):
        """material name -> minimum order weight, for every material owning a metal"""
        return {metal.material_name: metal.min_order_weight for metal in self}
