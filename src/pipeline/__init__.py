"""
Sticker Processing Pipeline

Three-stage pipeline:
1. Rembg - Background removal
2. Outline - White stroke around the subject
3. Encode - 512x512 WebP sticker with pack metadata
"""
