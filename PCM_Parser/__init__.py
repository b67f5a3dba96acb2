from .header_parser import PCMHeader, parse_header, read_header

__all__ = ['PCMHeader', 'parse_header', 'read_header']
