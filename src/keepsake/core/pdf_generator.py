"""
PDF Generation Module (WeasyPrint-backed)

Renders export HTML to PDF using WeasyPrint as the primary engine, with a
plain ReportLab rendering of headings and paragraphs as fallback when
WeasyPrint is unavailable or fails.
"""

import logging
import os
from typing import Optional
from xml.sax.saxutils import escape

from bs4 import BeautifulSoup
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer

from .pdf_engines.weasyprint_engine import WeasyPrintEngine


class PDFGenerator:
    """Generates PDF files from HTML content."""

    def __init__(self, engine: Optional[WeasyPrintEngine] = None):
        self.logger = logging.getLogger(__name__)
        self.engine = engine or WeasyPrintEngine()

    def generate_pdf(self,
                     html_content: str,
                     output_path: str,
                     title: str = None,
                     base_url: Optional[str] = None) -> bool:
        """
        Generate a PDF from HTML.

        Args:
            html_content: HTML document
            output_path: Target PDF path
            title: Document title used by the ReportLab fallback
            base_url: Base directory for resolving relative resources
        """
        try:
            os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
            if self.engine.available():
                base_dir = base_url or os.path.dirname(os.path.abspath(output_path))
                success = self.engine.generate(html_content=html_content,
                                               output_path=output_path,
                                               base_url=base_dir)
                if success:
                    self.logger.info(f"Successfully generated PDF: {output_path}")
                    return True
                self.logger.error("WeasyPrint failed; attempting ReportLab fallback")

            return self._generate_with_reportlab(html_content, output_path, title)
        except Exception as e:
            self.logger.error(f"Failed to generate PDF {output_path}: {e}")
            return False

    def _generate_with_reportlab(self, html_content: str, output_path: str, title: Optional[str]) -> bool:
        styles = getSampleStyleSheet()
        heading_styles = {'h1': styles['Heading1'], 'h2': styles['Heading2'], 'h3': styles['Heading3']}
        doc = SimpleDocTemplate(output_path, pagesize=A4, title=title or "")
        story = []
        soup = BeautifulSoup(html_content, 'lxml')

        t = soup.find('title')
        text_title = title or (t.get_text().strip() if t else "Keepsake export")
        story.append(Paragraph(escape(text_title), styles['Title']))
        story.append(Spacer(1, 12))

        for element in soup.find_all(['h1', 'h2', 'h3', 'p', 'li', 'pre', 'blockquote']):
            # Text inside nested blocks is emitted by the outermost block only
            if element.find_parent(['p', 'li', 'pre', 'blockquote']):
                continue
            txt = ' '.join(element.get_text().split())
            if not txt:
                continue
            if element.name == 'h1' and len(story) > 2:
                story.append(PageBreak())
            story.append(Paragraph(escape(txt), heading_styles.get(element.name, styles['Normal'])))
            story.append(Spacer(1, 6))

        doc.build(story)
        ok = os.path.exists(output_path) and os.path.getsize(output_path) > 0
        if ok:
            self.logger.info(f"Generated PDF with ReportLab: {output_path}")
        return ok
