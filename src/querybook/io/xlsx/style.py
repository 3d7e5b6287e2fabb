"""
Cell style templates and the styler used by :class:`~querybook.io.xlsx.writer.XlsxWriter`.

A style template is a named bundle of :class:`SpecCellFormat` values, one per
cell role (header, sub-footer, one per column kind, and a patch for the
anchors of merged regions). A styler is the
resolved set of formats a writer uses; it is assembled by
:class:`XlsxStylerBuilder` from explicit per-role overrides, falling back to
a template, which itself falls back to the ``standard`` template.

Example:
    >>> styler = (
    ...     XlsxStylerBuilder()
    ...     .with_style_template("forest")
    ...     .with_header_format(SpecCellFormat(bold=True, font_size=12))
    ...     .build()
    ... )
    >>> styler.header.font_size
    12
"""

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Self

from .conf import DEFAULT_STYLE_TEMPLATE_NAME, LIT_COL_KINDS, LIT_FMT_ROLES
from .spec import SpecCellFormat

################################################################################
# #region StyleTemplates


@dataclass(frozen=True, slots=True)
class SpecStyleTemplate:
    name: str
    header: SpecCellFormat
    subfooter: SpecCellFormat
    text: SpecCellFormat
    integer: SpecCellFormat
    decimal: SpecCellFormat
    date: SpecCellFormat
    datetime: SpecCellFormat
    boolean: SpecCellFormat
    # patch laid over the column format of a merged region's anchor
    merged: SpecCellFormat


def _create_style_template(
    name: str,
    *,
    fmt_base: SpecCellFormat,
    fmt_header_patch: SpecCellFormat,
    fmt_subfooter_patch: SpecCellFormat,
    fmt_merged_patch: SpecCellFormat = SpecCellFormat(
        align="center", valign="vcenter"
    ),
) -> SpecStyleTemplate:
    return SpecStyleTemplate(
        name=name,
        header=fmt_base.merge(fmt_header_patch),
        subfooter=fmt_base.merge(fmt_subfooter_patch),
        text=fmt_base,
        integer=fmt_base.with_(num_format="0", align="right"),
        decimal=fmt_base.with_(num_format="#,##0.00", align="right"),
        date=fmt_base.with_(num_format="yyyy-mm-dd", align="center"),
        datetime=fmt_base.with_(num_format="yyyy-mm-dd hh:mm:ss", align="center"),
        boolean=fmt_base.with_(align="center"),
        merged=fmt_merged_patch,
    )


_cls_base_fmt_spec = SpecCellFormat(
    font_name="Calibri", font_size=11, border=1, align="left", valign="vcenter"
)

DICT_STYLE_TEMPLATES: Mapping[str, SpecStyleTemplate] = MappingProxyType(
    {
        "standard": _create_style_template(
            "standard",
            fmt_base=_cls_base_fmt_spec,
            fmt_header_patch=SpecCellFormat(
                bold=True, align="center", bg_color="#D9D9D9", pattern=1
            ),
            fmt_subfooter_patch=SpecCellFormat(
                bold=True, bg_color="#D9D9D9", pattern=1
            ),
        ),
        "summer": _create_style_template(
            "summer",
            fmt_base=_cls_base_fmt_spec.with_(font_name="Arial"),
            fmt_header_patch=SpecCellFormat(
                bold=True,
                align="center",
                bg_color="#FFC000",
                font_color="#FFFFFF",
                pattern=1,
            ),
            fmt_subfooter_patch=SpecCellFormat(
                bold=True, bg_color="#FFE699", pattern=1
            ),
        ),
        "forest": _create_style_template(
            "forest",
            fmt_base=_cls_base_fmt_spec,
            fmt_header_patch=SpecCellFormat(
                bold=True,
                align="center",
                bg_color="#375623",
                font_color="#FFFFFF",
                pattern=1,
            ),
            fmt_subfooter_patch=SpecCellFormat(
                bold=True, bg_color="#A9D08E", pattern=1
            ),
        ),
        "stone": _create_style_template(
            "stone",
            fmt_base=_cls_base_fmt_spec.with_(font_name="Times New Roman"),
            fmt_header_patch=SpecCellFormat(
                bold=True,
                align="center",
                bg_color="#595959",
                font_color="#FFFFFF",
                pattern=1,
            ),
            fmt_subfooter_patch=SpecCellFormat(
                bold=True, italic=True, bg_color="#BFBFBF", pattern=1
            ),
        ),
    }
)


def get_style_template(name: str) -> SpecStyleTemplate:
    try:
        return DICT_STYLE_TEMPLATES[name]
    except KeyError as e:
        raise KeyError(
            f"Unknown style template {name!r}; known: {sorted(DICT_STYLE_TEMPLATES)}"
        ) from e


# #endregion
################################################################################
# #region Styler


@dataclass(frozen=True, slots=True)
class SpecXlsxStyler:
    header: SpecCellFormat
    subfooter: SpecCellFormat
    text: SpecCellFormat
    integer: SpecCellFormat
    decimal: SpecCellFormat
    date: SpecCellFormat
    datetime: SpecCellFormat
    boolean: SpecCellFormat
    merged: SpecCellFormat

    def format_for_kind(self, kind: LIT_COL_KINDS) -> SpecCellFormat:
        return getattr(self, kind)

    def format_for_merged_region(self, kind: LIT_COL_KINDS) -> SpecCellFormat:
        """Column format of ``kind`` with the ``merged`` patch laid over it."""
        return self.format_for_kind(kind).merge(self.merged)

    @classmethod
    def from_template(cls, template: SpecStyleTemplate) -> "SpecXlsxStyler":
        return cls(
            header=template.header,
            subfooter=template.subfooter,
            text=template.text,
            integer=template.integer,
            decimal=template.decimal,
            date=template.date,
            datetime=template.datetime,
            boolean=template.boolean,
            merged=template.merged,
        )


class XlsxStylerBuilder:
    def __init__(self) -> None:
        self._template: SpecStyleTemplate | None = None
        self._overrides: dict[LIT_FMT_ROLES, SpecCellFormat] = {}

    def with_style_template(self, template: SpecStyleTemplate | str) -> Self:
        self._template = (
            get_style_template(template) if isinstance(template, str) else template
        )
        return self

    def with_format(self, role: LIT_FMT_ROLES, fmt: SpecCellFormat | None) -> Self:
        """Override one role; ``None`` leaves the template format in place."""
        if role not in SpecXlsxStyler.__dataclass_fields__:
            raise KeyError(f"Unknown format role: {role!r}")
        if fmt is None:
            self._overrides.pop(role, None)
        else:
            self._overrides[role] = fmt
        return self

    def with_header_format(self, fmt: SpecCellFormat | None) -> Self:
        return self.with_format("header", fmt)

    def with_subfooter_format(self, fmt: SpecCellFormat | None) -> Self:
        return self.with_format("subfooter", fmt)

    def with_text_format(self, fmt: SpecCellFormat | None) -> Self:
        return self.with_format("text", fmt)

    def with_integer_format(self, fmt: SpecCellFormat | None) -> Self:
        return self.with_format("integer", fmt)

    def with_decimal_format(self, fmt: SpecCellFormat | None) -> Self:
        return self.with_format("decimal", fmt)

    def with_date_format(self, fmt: SpecCellFormat | None) -> Self:
        return self.with_format("date", fmt)

    def with_datetime_format(self, fmt: SpecCellFormat | None) -> Self:
        return self.with_format("datetime", fmt)

    def with_boolean_format(self, fmt: SpecCellFormat | None) -> Self:
        return self.with_format("boolean", fmt)

    def with_merged_format(self, fmt: SpecCellFormat | None) -> Self:
        """Override the patch laid over the anchors of merged regions."""
        return self.with_format("merged", fmt)

    def build(self) -> SpecXlsxStyler:
        template = self._template or get_style_template(DEFAULT_STYLE_TEMPLATE_NAME)
        styler = SpecXlsxStyler.from_template(template)
        if not self._overrides:
            return styler
        return SpecXlsxStyler(
            **{
                _role: self._overrides.get(_role, getattr(styler, _role))
                for _role in SpecXlsxStyler.__dataclass_fields__
            }
        )


# #endregion
################################################################################
