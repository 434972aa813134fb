"""Authoritative reference values derived from the supplier record."""

from typing import Any, Dict, Optional

from qualification.database.models import Supplier


def combined_address(supplier: Supplier) -> Optional[str]:
    parts = [part.strip() for part in (supplier.address, supplier.city, supplier.province) if part and part.strip()]
    return ", ".join(parts) if parts else None


def build_reference_fields(supplier: Optional[Supplier]) -> Dict[str, Any]:
    """Map supplier data onto the field names used in extracted documents.

    The VAT number falls back to the fiscal code, which coincides with it
    for most Italian companies.
    """
    if supplier is None:
        return {}

    return {
        "denominazione_ragione_sociale": supplier.company_name,
        "codice_fiscale": supplier.fiscal_code,
        "partita_iva": supplier.vat_number or supplier.fiscal_code,
        "sede_legale": combined_address(supplier),
        "categorie": list(supplier.soa_categories or []),
        "standard": list(supplier.iso_certifications or []),
    }
