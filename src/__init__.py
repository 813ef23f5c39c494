"""Donation form OCR.

Reads scanned donation forms (PDF or image) and returns one structured donor
record per form: OpenCV page cleanup and form detection, Tesseract field OCR,
rule-based parsing of donor, amount and payment details.
"""
