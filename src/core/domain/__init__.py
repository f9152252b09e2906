"""Modelos y entidades del dominio.

Por qué:
- Aquí viven las estructuras de datos puras y estrictas (Pydantic v2),
  la taxonomía de errores y la geometría básica.
- El dominio no conoce HTTP, CLI ni motores de mapas: solo conceptos del rancho.
"""
