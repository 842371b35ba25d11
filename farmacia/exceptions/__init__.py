"""Custom exceptions for the Farmacia POS application."""


class PosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(PosError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class OutOfStockError(BusinessLogicError):
    """Raised when a matched product has no stock at all."""
    def __init__(self, product_id, product_name):
        self.product_id = product_id
        self.product_name = product_name
        super().__init__(
            f'El producto "{product_name}" no tiene stock disponible',
            status_code=409,
            payload={'product_id': product_id}
        )


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_id, product_name, required, available):
        self.product_id = product_id
        self.product_name = product_name
        self.required = required
        self.available = available
        message = f"Stock insuficiente para {product_name}: se requieren {required}, disponible {available}"
        super().__init__(
            message,
            status_code=409,
            payload={'product_id': product_id, 'required': required, 'available': available}
        )


class EmptyCartError(BusinessLogicError):
    """Raised when finalizing a cart without lines."""
    def __init__(self, message='El carrito está vacío'):
        super().__init__(message)


class StockConflictError(BusinessLogicError):
    """Raised when a guarded stock update loses against a concurrent change."""
    def __init__(self, product_id, message=None):
        self.product_id = product_id
        super().__init__(
            message or 'El stock cambió mientras se actualizaba. Intente nuevamente.',
            status_code=409,
            payload={'product_id': product_id}
        )


class CustomerResolutionError(PosError):
    """Raised when the sale customer cannot be looked up or created."""
    def __init__(self, message='No se pudo resolver el cliente de la venta'):
        super().__init__(message, 422)


class PersistenceFailure(PosError):
    """Raised when the store fails during a commit. Nothing was persisted."""
    def __init__(self, message='Error al registrar la venta. No se guardaron cambios.'):
        super().__init__(message, 503)


class ConfigurationError(PosError):
    """Raised at startup when the store is misconfigured or unreachable."""
    def __init__(self, message):
        super().__init__(message, 500)
