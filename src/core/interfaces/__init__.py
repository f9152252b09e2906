"""Interfaces/abstracciones del Core.

Por qué:
- Define contratos (Protocol) que implementan adaptadores concretos
  (motores de mapa, almacén de credenciales, sensores de posición).
- Permite invertir dependencias: el Core depende de abstracciones.
"""
