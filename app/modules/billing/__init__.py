"""
Módulo de documentos tributarios (DTE)

INTEGRACIÓN CON OTROS MÓDULOS:
- Taxes: desglose neto/impuesto y validación de identidad antes de emitir
- Sessions: el folio y el estado quedan guardados en la sesión
"""
