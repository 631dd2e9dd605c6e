"""
Utility Functions Module

This module provides helper functions for tabulating outcomes, CSV export, and display.
"""

import logging
import os
from dataclasses import asdict

import pandas as pd
from rich.console import Console
from rich.table import Table

logger = logging.getLogger(__name__)

console = Console()


def bands_to_frame(bands):
    """Percentile bands as a DataFrame, one row per year index"""
    df = pd.DataFrame(bands.as_dict())
    df.insert(0, 'year', range(len(df)))
    return df


def ledger_to_frame(ledger):
    return pd.DataFrame([asdict(entry) for entry in ledger],
                        columns=['year', 'start_balance', 'return_rate', 'return_amount',
                                 'withdrawal_amount', 'inflation', 'end_balance'])


def trace_to_frame(search_trace):
    return pd.DataFrame(search_trace, columns=['capital', 'success_rate'])


def print_rich_table(df, title):
    """Print a pandas DataFrame as a rich table"""
    table = Table(title=title, title_style="bold magenta",
                  header_style="bold cyan")
    for col in df.columns:
        table.add_column(str(col), justify="right")
    for _, row in df.iterrows():
        table.add_row(*[str(item) for item in row])
    console.print(table)


def export_to_csv(data, filename, output_dir='Survival Outputs', subdirectory=None):
    """Export data to CSV file"""
    if subdirectory:
        output_dir = os.path.join(output_dir, subdirectory)
    filepath = os.path.join(output_dir, filename)
    df = data if isinstance(data, pd.DataFrame) else pd.DataFrame(data)
    os.makedirs(output_dir, exist_ok=True)
    df.to_csv(filepath, index=False)
    logger.info(f"Data successfully exported to '{filepath}'")
    return filepath
