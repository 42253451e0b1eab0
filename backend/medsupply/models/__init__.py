from medsupply.models.supply_item import SupplyItem, SupplyIdSequence

__all__ = ["SupplyItem", "SupplyIdSequence"]
