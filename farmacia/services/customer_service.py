"""Customer service for resolving the customer of a sale."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from farmacia.exceptions import CustomerResolutionError
from farmacia.stores.base import DuplicateKeyError, PosStore
from farmacia.stores.records import Customer, DocumentType, parse_enum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerInput:
    """Customer data typed by the cashier at checkout."""
    document_number: Optional[str] = None
    name: Optional[str] = None
    document_type: DocumentType = DocumentType.DNI

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'CustomerInput':
        data = data or {}
        document_type = data.get('document_type') or DocumentType.DNI
        try:
            document_type = parse_enum(DocumentType, document_type, 'Tipo de documento')
        except ValueError as e:
            raise CustomerResolutionError(str(e))
        return cls(
            document_number=(data.get('document_number') or '').strip() or None,
            name=(data.get('name') or '').strip() or None,
            document_type=document_type
        )


def resolve_customer(store: PosStore, customer_input: Union[CustomerInput, Dict[str, Any], None]) -> Optional[Customer]:
    """
    Resolve the customer for a sale.

    - Document supplied and found: that customer.
    - Document supplied, not found, name supplied: a new customer is created.
    - Anything else: no customer (the receipt shows the generic customer).

    This function is safe under concurrent checkouts for the same new
    document: a lost insert race falls back to the row the other one created.

    Raises:
        CustomerResolutionError: the store failed to look up or create
    """
    if customer_input is None:
        return None
    if not isinstance(customer_input, CustomerInput):
        customer_input = CustomerInput.from_dict(customer_input)

    document_number = customer_input.document_number
    if not document_number:
        return None

    try:
        customer = store.find_customer_by_document(document_number)
        if customer is not None:
            return customer

        if not customer_input.name:
            return None

        try:
            customer = store.create_customer({
                'name': customer_input.name,
                'document_type': customer_input.document_type,
                'document_number': document_number
            })
            logger.info(f"[CUSTOMER] Created customer {customer.id} doc={document_number}")
            return customer
        except DuplicateKeyError:
            # Race condition: another checkout created it simultaneously
            customer = store.find_customer_by_document(document_number)
            if customer is not None:
                return customer
            raise
    except CustomerResolutionError:
        raise
    except Exception as e:
        logger.error(f"[CUSTOMER] Could not resolve customer doc={document_number}: {e}", exc_info=True)
        raise CustomerResolutionError(f'No se pudo registrar el cliente con documento {document_number}')
