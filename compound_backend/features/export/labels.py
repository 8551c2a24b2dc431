"""Static captions used in the exported workbook."""

YES = "X"
NO = "-"
NOT_AVAILABLE = "N/A"
UNTITLED = "Untitled Compound"

SHEET_MAIN = "Thông tin chính"
SHEET_NMR_TABLE = "Bảng NMR"
SHEET_NMR_DETAILS = "Chi tiết NMR"
SHEET_SPECTRA = "Ảnh phổ"

MAIN = {
    "other_name": "Tên khác:",
    "type": "Loại:",
    "new": "Chất mới",
    "known": "Đã biết",
    "source": "Nguồn:",
    "latin_name": "1. Tên Latin:",
    "english_name": "2. Tên tiếng Anh:",
    "vietnamese_name": "3. Tên tiếng Việt:",
    "research_part": "4. Bộ phận nghiên cứu:",
    "other_sources": "5. Nguồn khác:",
    "physical": "TCVL:",
    "state": "Trạng thái:",
    "color": "Màu:",
    "uv": "UV SKLM",
    "uv254": "254nm",
    "uv365": "365nm",
    "melting_point": "Điểm nóng chảy",
    "solvent": "Dung môi hòa tan:",
    "optical_rotation": "[α]D",
    "structure": "Cấu trúc:",
    "formula": "CTPT",
    "weight": "KLPT",
    "absolute_configuration": "Cấu hình tuyệt đối:",
    "smiles": "SMILES:",
    "spectra": "Phổ:",
    "nmr_solvent": "Dung môi NMR:",
    "cc_data": "CC. Data:",
    "cart_coords": "Cartesian coordinates",
    "imaginary_freq": "# of imaginary freq.",
    "total_energy": "Total Energy",
}

NMR_TABLE = {
    "title": "Bảng {table} - Hợp chất {compound}",
    "position": "Vị trí",
    "delta_c": "δC (ppm)",
    "delta_h": "δH (ppm, J Hz)",
}

NMR_DETAILS = {
    "notes": "Một số lưu ý",
    "a": "a",
    "b": "b",
    "c": "c",
    "references": "TLTK",
}

SPECTRA = {
    "title": "Ảnh của các phổ đã tích ở trang 1",
    "external": "Xem {label}",
    "unknown_format": "Data present (unknown format)",
    "empty": "No spectra images uploaded or URLs provided.",
}

SPECTRAL_LABELS = {
    "1h": "1H NMR",
    "13c": "13C NMR",
    "dept": "DEPT",
    "hsqc": "HSQC",
    "hmbc": "HMBC",
    "cosy": "COSY",
    "noesy": "NOESY",
    "roesy": "ROESY",
    "hrms": "HRMS",
    "lrms": "LRMS",
    "ir": "IR",
    "uv_pho": "UV",
    "cd": "CD",
}
