"""
Background removal component package.

Exposes reusable primitives for resolving image sources, running either the
local person-segmentation backend or the rembg matting backend, compositing
masks into transparent cutouts, and serving the FastAPI application.
"""
