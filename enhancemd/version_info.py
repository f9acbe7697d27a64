__version__ = "1.0.0"
__build_timestamp__ = "source"
__build_type__ = "development"
__description__ = "Markdown content pipeline with template variables, smart components and embedded images"
