import os
from datetime import datetime

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from errors import ValidationError

REPORT_FORMATS = ('excel', 'pdf')


def orders_dataframe(orders):
    data = []
    for order in orders:
        data.append({
            'Order': order.id,
            'Customer': order.customer.name if order.customer else None,
            'Email': order.customer.email if order.customer else None,
            'Subtotal': order.subtotal,
            'Discount': order.discount_amount or 0,
            'Total': order.total_amount,
            'Payment': order.payment_method_display,
            'Payment Status': order.payment_status,
            'Status': order.status,
            'Date': order.created_at.strftime('%Y-%m-%d') if order.created_at else '',
        })
    columns = ['Order', 'Customer', 'Email', 'Subtotal', 'Discount', 'Total',
               'Payment', 'Payment Status', 'Status', 'Date']
    return pd.DataFrame(data, columns=columns)


def _build_pdf(df, filepath):
    doc = SimpleDocTemplate(filepath, pagesize=landscape(A4))
    styles = getSampleStyleSheet()
    elements = [Paragraph('Orders Report', styles['Title']), Spacer(1, 0.2 * inch)]

    table_data = [list(df.columns)] + df.astype(str).values.tolist()
    table = Table(table_data)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 8),
        ('GRID', (0, 0), (-1, -1), 1, colors.black),
    ]))
    elements.append(table)

    summary = Table([
        ['Orders:', str(len(df))],
        ['Revenue:', f"{df['Total'].sum():.2f}" if len(df) else '0.00'],
    ])
    summary.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
    ]))
    elements.extend([Spacer(1, 0.2 * inch), summary])
    doc.build(elements)


def export_orders_report(orders, fmt, folder):
    """Write the orders report to ``folder`` and return the file path."""
    if fmt not in REPORT_FORMATS:
        raise ValidationError('Unsupported report format', supported=list(REPORT_FORMATS))

    os.makedirs(folder, exist_ok=True)
    df = orders_dataframe(orders)
    filename = f'orders_report_{datetime.now().strftime("%Y%m%d_%H%M%S_%f")}'

    if fmt == 'excel':
        filepath = os.path.join(folder, f'{filename}.xlsx')
        df.to_excel(filepath, index=False)
    else:
        filepath = os.path.join(folder, f'{filename}.pdf')
        _build_pdf(df, filepath)
    return filepath
